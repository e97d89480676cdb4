"""
                        Services Module

Contains the engine's services with the hybrid architecture pattern.
External collaborators have Mock (development) and Real (production)
implementations behind an abstract base class and a cached factory.

Services:
    - config: Settings store with default layering (SQL / in-memory)
    - notifier: Settings change notifications (in-process / Redis)
    - geo: Geocoding (Mock / Google Maps), retry policy, distance
    - delivery: Zone resolution, geocode cache, quote orchestration
"""
