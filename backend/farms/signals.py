from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Farm
from .services.stats import ensure_statistics


@receiver(post_save, sender=Farm)
def handle_farm_post_save(sender, instance, created, raw=False, **kwargs):
    if created and not raw:
        ensure_statistics(instance)
