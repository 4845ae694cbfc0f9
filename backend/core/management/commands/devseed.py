from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from accounts.capabilities import caller_for
from accounts.models import User
from activities.models import Activity
from activities.pricing import Participants
from bookings.services.ledger import LineRequest, create_booking
from farms.models import Farm


SEED_PASSWORD = "Farmstay123!"
SUPERUSER_EMAIL = "admin@farmstay.test"
SUPERUSER_PASSWORD = "AdminFarmstay123!"


class Command(BaseCommand):
    help = "Populate the local development database with sample data."

    def handle(self, *args, **options):
        if not settings.DEBUG:
            raise CommandError("Refusing to seed data while DEBUG is False.")

        with transaction.atomic():
            self.stdout.write(self.style.MIGRATE_HEADING("Creating users"))
            farmer = self._ensure_user(
                email="farmer@greenacres.test",
                first_name="Fatima",
                last_name="Farmer",
                role=User.FARMER,
            )
            tourist = self._ensure_user(
                email="tourist@example.test",
                first_name="Theo",
                last_name="Tourist",
                role=User.TOURIST,
            )
            self._ensure_superuser()

            self.stdout.write(self.style.MIGRATE_HEADING("Creating farms & activities"))
            farm = self._ensure_farm(
                owner=farmer,
                slug="green-acres",
                name="Green Acres Farm",
                email="hello@greenacres.test",
                phone="555-0100",
            )
            picking = self._ensure_activity(
                farm,
                name="Strawberry Picking",
                category=Activity.HARVESTING,
                adult_price=Decimal("20.00"),
                child_price=Decimal("14.00"),
                max_participants=12,
            )
            self._ensure_activity(
                farm,
                name="Cheese Making Workshop",
                category=Activity.WORKSHOP,
                adult_price=Decimal("45.00"),
                senior_price=Decimal("36.00"),
                min_participants=2,
                max_participants=8,
            )

            if not tourist.bookings.exists():
                self.stdout.write(self.style.MIGRATE_HEADING("Creating sample booking"))
                booking = create_booking(
                    caller_for(tourist),
                    farm_id=farm.pk,
                    lines=[
                        LineRequest(
                            activity_id=picking.pk,
                            date=timezone.localdate() + timedelta(days=14),
                            participants=Participants(adults=2, children=1),
                        )
                    ],
                    contact_info={"email": tourist.email, "name": tourist.get_full_name()},
                )
                self.stdout.write(self.style.NOTICE(f"Booking {booking.confirmation_code} total {booking.total}"))

        self.stdout.write(self.style.SUCCESS("Development seed data created."))
        self.stdout.write(self.style.NOTICE(f"Sample login accounts use password: {SEED_PASSWORD}"))
        self.stdout.write(self.style.NOTICE(f"Admin superuser {SUPERUSER_EMAIL} password: {SUPERUSER_PASSWORD}"))

    def _ensure_user(self, email: str, first_name: str, last_name: str, role: str) -> User:
        user, created = User.objects.get_or_create(
            email=email,
            defaults={
                "username": email,
                "first_name": first_name,
                "last_name": last_name,
                "display_name": f"{first_name} {last_name}",
                "role": role,
            },
        )
        if user.role != role:
            user.role = role
            user.save(update_fields=["role"])
        if created or not user.has_usable_password():
            user.set_password(SEED_PASSWORD)
            user.save(update_fields=["password"])
        return user

    def _ensure_farm(self, *, owner: User, slug: str, name: str, email: str, phone: str) -> Farm:
        farm, _ = Farm.objects.get_or_create(
            slug=slug,
            defaults={
                "owner": owner,
                "name": name,
                "contact_email": email,
                "phone": phone,
                "status": Farm.APPROVED,
            },
        )
        if not farm.accepts_bookings:
            farm.status = Farm.APPROVED
            farm.is_active = True
            farm.save(update_fields=["status", "is_active"])
        return farm

    def _ensure_activity(self, farm: Farm, *, name: str, **fields) -> Activity:
        activity, created = Activity.objects.get_or_create(farm=farm, name=name, defaults=fields)
        if created:
            self.stdout.write(self.style.NOTICE(f"Added {name} to {farm.name}"))
        return activity

    def _ensure_superuser(self) -> User:
        user, created = User.objects.get_or_create(
            email=SUPERUSER_EMAIL,
            defaults={
                "username": SUPERUSER_EMAIL,
                "first_name": "Admin",
                "last_name": "User",
                "display_name": "Admin User",
                "role": User.ADMIN,
                "is_staff": True,
                "is_superuser": True,
            },
        )
        flag_updates = {}
        if not user.is_staff:
            flag_updates["is_staff"] = True
        if not user.is_superuser:
            flag_updates["is_superuser"] = True
        if flag_updates:
            for attr, value in flag_updates.items():
                setattr(user, attr, value)
            user.save(update_fields=list(flag_updates.keys()))
        if created or not user.has_usable_password():
            user.set_password(SUPERUSER_PASSWORD)
            user.save(update_fields=["password"])
        return user
