"""
Seed script -- populates the database with sample data for local testing.

Run after migrations:
    python seed.py

Creates:
  - 4 sample riders
  - 6 sample drivers around central Mexico City (4 available)
  - 3 sample trips (REQUESTED, ACCEPTED, COMPLETED)

Every account uses the password ``password123``.
"""

import asyncio

from sqlalchemy import text

from ridehail.api.security import hash_password
from ridehail.config import settings
from ridehail.domain.enums import TripStatus, UserRole
from ridehail.domain.geo import cell_for
from ridehail.infrastructure.database import async_session_factory, engine
from ridehail.infrastructure.repositories import (
    DriverRepository,
    TripRepository,
    UserRepository,
)

PASSWORD = "password123"

# Zócalo, Mexico City
CENTER_LAT, CENTER_LNG = 19.4326, -99.1332

RIDERS = [
    {"name": "Lucía Hernández", "email": "lucia@example.com"},
    {"name": "Mateo García", "email": "mateo@example.com"},
    {"name": "Valentina López", "email": "valentina@example.com"},
    {"name": "Santiago Martínez", "email": "santiago@example.com"},
]

DRIVERS = [
    {"name": "Carlos Ruiz", "email": "carlos@example.com", "car": ("Nissan Versa", "White", "ABC-123-A"), "lat": 19.4340, "lng": -99.1350, "available": True},
    {"name": "Ana Torres", "email": "ana@example.com", "car": ("Toyota Corolla", "Grey", "DEF-456-B"), "lat": 19.4300, "lng": -99.1400, "available": True},
    {"name": "Jorge Díaz", "email": "jorge@example.com", "car": ("Kia Rio", "Red", "GHI-789-C"), "lat": 19.4270, "lng": -99.1670, "available": True},
    {"name": "María Flores", "email": "maria@example.com", "car": ("Chevrolet Aveo", "Blue", "JKL-012-D"), "lat": 19.4200, "lng": -99.1500, "available": True},
    {"name": "Luis Romero", "email": "luis@example.com", "car": ("Honda City", "Black", "MNO-345-E"), "lat": 19.4400, "lng": -99.1300, "available": False},
    {"name": "Sofía Vargas", "email": "sofia@example.com", "car": ("VW Vento", "Silver", "PQR-678-F"), "lat": 19.4100, "lng": -99.1700, "available": False},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        users = UserRepository(session)
        drivers = DriverRepository(session)
        trips = TripRepository(session)
        password_hash = hash_password(PASSWORD)

        # ── Riders ────────────────────────────────────────────────────
        riders = []
        for r in RIDERS:
            riders.append(
                await users.create_user(
                    name=r["name"], email=r["email"], password_hash=password_hash
                )
            )
        print(f"  Created {len(riders)} riders")

        # ── Drivers ───────────────────────────────────────────────────
        driver_models = []
        for d in DRIVERS:
            user = await users.create_user(
                name=d["name"],
                email=d["email"],
                password_hash=password_hash,
                role=UserRole.DRIVER,
            )
            model, color, plate = d["car"]
            driver = await drivers.create_driver(
                user=user, car_model=model, car_color=color, car_plate=plate
            )
            await drivers.update_location(driver, d["lat"], d["lng"], settings.h3_resolution)
            await drivers.set_available(driver, d["available"])
            driver_models.append(driver)
        print(f"  Created {len(driver_models)} drivers")

        # ── Trips ─────────────────────────────────────────────────────
        trips_data = [
            # Waiting for a driver
            {"rider": riders[0], "pickup": (19.4330, -99.1340), "dropoff": (19.4270, -99.1677), "status": TripStatus.REQUESTED, "driver": None, "fare": 7.1},
            # Driver on the way
            {"rider": riders[1], "pickup": (19.4380, -99.1310), "dropoff": (19.4050, -99.1700), "status": TripStatus.ACCEPTED, "driver": driver_models[4], "fare": 9.4},
            # Finished
            {"rider": riders[2], "pickup": (19.4200, -99.1600), "dropoff": (19.3600, -99.1800), "status": TripStatus.COMPLETED, "driver": driver_models[5], "fare": 11.8},
        ]
        for t in trips_data:
            trip = await trips.create_trip(
                rider_id=t["rider"].id,
                pickup_lat=t["pickup"][0],
                pickup_lng=t["pickup"][1],
                dropoff_lat=t["dropoff"][0],
                dropoff_lng=t["dropoff"][1],
                pickup_cell=cell_for(*t["pickup"], settings.h3_resolution),
                fare=t["fare"],
            )
            trip.status = t["status"]
            trip.driver_id = t["driver"].id if t["driver"] else None
        await session.flush()
        print(f"  Created {len(trips_data)} trips")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
