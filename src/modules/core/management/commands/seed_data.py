from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.builds.constants import CheckoutStep
from modules.builds.dtos import BuyerInfoDTO, CreateBuildDTO
from modules.builds.views import get_build_service
from modules.pricing.dtos import OptionLine
from modules.storefront_settings.repositories.django_repository import (
    SettingsDjangoRepository,
)


class Command(BaseCommand):
    help = "Seed database with realistic development data."

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users = self._seed_users()
        SettingsDjangoRepository().get_or_create()
        builds_created = self._seed_builds(users)

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={len(users)}, "
                f"builds={builds_created}"
            )
        )

    def _seed_users(self) -> list:
        User = get_user_model()
        users = []
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
        for username, first, last in (
            ("buyer", "Avery", "Jordan"),
            ("buyer2", "Riley", "Morgan"),
        ):
            user, created = User.objects.get_or_create(
                username=username,
                defaults={"first_name": first, "last_name": last, "email": f"{username}@example.com"},
            )
            if created:
                user.set_password(f"{username}123")
                user.save()
            users.append(user)
        return users

    def _seed_builds(self, users) -> int:
        self.stdout.write("Creating builds...")
        service = get_build_service()
        catalog = [
            ("magnolia", "The Magnolia", Decimal("8000000")),
            ("willow", "The Willow", Decimal("6450000")),
            ("juniper", "The Juniper", Decimal("9925000")),
        ]
        options = [
            OptionLine(id="porch", name="Covered porch", price=Decimal("450000")),
            OptionLine(id="solar", name="Solar package", price=Decimal("1200000")),
            OptionLine(id="loft", name="Sleeping loft", price=Decimal("350000")),
        ]
        created = 0
        for user in users:
            if service.list_builds(str(user.pk)).exists():
                continue
            for slug, name, price in catalog:
                build = service.create_build(
                    CreateBuildDTO(
                        owner_id=str(user.pk),
                        model_slug=slug,
                        model_name=name,
                        name=f"My {name}",
                        base_price_cents=price,
                        options=random.sample(options, k=random.randint(0, len(options))),
                        delivery_fee_cents=Decimal(random.choice([150000, 237500, 410000])),
                        buyer_info=BuyerInfoDTO(
                            first_name=user.first_name,
                            last_name=user.last_name,
                            email=user.email,
                            address="1200 Main St",
                            city="Austin",
                            state="TX",
                            zip="78701",
                        ),
                    )
                )
                service.advance_step(str(build.id), CheckoutStep.OVERVIEW, owner_id=str(user.pk))
                created += 1
        self.stdout.write(self.style.SUCCESS("Creating builds... Done!"))
        return created
