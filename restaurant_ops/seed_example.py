from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from restaurant_ops.config import Settings
from restaurant_ops.db import build_engine, build_session_factory
from restaurant_ops.models import Base, DeviceStatus, IoTDevice, Restaurant, User, UserRole
from restaurant_ops.security.passwords import hash_password, hash_pin


DEMO_STAFF = (
    ('staff1@example.com', 'Alex Tremblay', 'Line Cook', '1111'),
    ('staff2@example.com', 'Sam Gagnon', 'Server', '2222'),
)


def seed(session_factory: sessionmaker[Session]) -> None:
    with session_factory() as db:
        restaurant = db.execute(select(Restaurant).where(Restaurant.name == 'Downtown')).scalar_one_or_none()
        if not restaurant:
            restaurant = Restaurant(name='Downtown', name_fr='Centre-ville', timezone='America/Montreal', is_franchise=True)
            db.add(restaurant)
            db.flush()

        manager = db.execute(select(User).where(User.email == 'manager@example.com')).scalar_one_or_none()
        if not manager:
            db.add(
                User(
                    email='manager@example.com',
                    password_hash=hash_password('managerpass'),
                    role=UserRole.MANAGER,
                    full_name='Demo Manager',
                    restaurant_id=restaurant.id,
                    is_active=True,
                )
            )

        for email, full_name, position, pin in DEMO_STAFF:
            staff = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if not staff:
                db.add(
                    User(
                        email=email,
                        pin_hash=hash_pin(pin),
                        role=UserRole.STAFF,
                        full_name=full_name,
                        position=position,
                        restaurant_id=restaurant.id,
                        is_active=True,
                    )
                )

        fryer = db.execute(
            select(IoTDevice).where(IoTDevice.restaurant_id == restaurant.id, IoTDevice.device_name == 'Fryer 1')
        ).scalar_one_or_none()
        if not fryer:
            db.add(
                IoTDevice(
                    restaurant_id=restaurant.id,
                    device_type='fryer',
                    device_name='Fryer 1',
                    device_name_fr='Friteuse 1',
                    location='Kitchen line',
                    status=DeviceStatus.INACTIVE,
                )
            )

        db.commit()


def main() -> None:
    settings = Settings()
    engine = build_engine(settings)
    Base.metadata.create_all(engine)
    seed(build_session_factory(engine))


if __name__ == '__main__':
    main()
