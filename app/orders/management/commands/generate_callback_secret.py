"""
Print a fresh secret for VIPPS_CALLBACK_SECRET.

Usage:
    python manage.py generate_callback_secret
    python manage.py generate_callback_secret --bytes 48
"""

import secrets

from django.core.management.base import BaseCommand, CommandError, CommandParser

MIN_SECRET_BYTES = 16


class Command(BaseCommand):
    help = "Generate a random hex secret for signing Vipps callback tokens."

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--bytes",
            type=int,
            default=32,
            dest="num_bytes",
            help="Number of random bytes (default 32, i.e. 64 hex characters).",
        )

    def handle(self, *args, **options):
        num_bytes = options["num_bytes"]
        if num_bytes < MIN_SECRET_BYTES:
            raise CommandError(f"--bytes must be at least {MIN_SECRET_BYTES}")

        secret = secrets.token_hex(num_bytes)
        self.stdout.write(secret)
        self.stderr.write(
            self.style.NOTICE(
                "Set VIPPS_CALLBACK_SECRET to this value. Rotating it invalidates "
                "callbacks for sessions created before the change."
            )
        )
