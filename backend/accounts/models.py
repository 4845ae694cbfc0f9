from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    TOURIST = "tourist"
    FARMER = "farmer"
    ADMIN = "admin"
    ROLES = [
        (TOURIST, "Tourist"),
        (FARMER, "Farmer"),
        (ADMIN, "Administrator"),
    ]

    display_name = models.CharField(max_length=120, blank=True)
    role = models.CharField(max_length=20, choices=ROLES, default=TOURIST)

    @property
    def notification_name(self) -> str:
        return self.display_name or self.get_full_name() or self.email
