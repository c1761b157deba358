"""
Booking API Service package for the Medicare platform.

The service exposes doctors, reviews, appointments and admin moderation,
with public doctor reads served through an in-process response cache:
- Cache-aside: doctor list and detail routes replay cached responses
- Invalidation: doctor, review and approval writes drop the doctors collection
- Expiry: per-route TTLs, lazy checks on read, and a periodic sweep

Structure:
- app.main: FastAPI app, routes, and cache wiring.
- app.caching: Cache store, interceptor, invalidation trigger, sweeper.
- app.domain: Pydantic models and booking services.
- app.adapters: Repositories standing in for the document database.
- app.auth: Bearer-token authentication and role checks.
"""
