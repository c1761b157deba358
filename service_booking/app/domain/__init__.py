"""
Domain layer for the booking service.

``models`` holds the pydantic documents exchanged with clients and stored by
the adapters; ``booking`` holds the services that implement doctor search,
reviews, appointment booking and admin aggregates on top of the repositories.
"""
