"""
Add celery-beat schedule for terminating abandoned orders.

This migration creates the periodic task schedule for the
reap_abandoned_orders task, which runs every 30 minutes and terminates
unpaid orders older than ORDERS_ABANDONED_MAX_AGE_MINUTES.
"""

from django.db import migrations


TASK_NAME = "Reap Abandoned Orders"


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for reaping abandoned orders."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Create interval schedule: every 30 minutes
    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=30,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name=TASK_NAME,
        defaults={
            "task": "orders.workers.order_reaper.reap_abandoned_orders",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Terminates PENDING and PAYMENT_PENDING orders whose checkout "
                "was abandoned."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name=TASK_NAME).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("orders", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
