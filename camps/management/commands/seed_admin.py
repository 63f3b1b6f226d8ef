# camps/management/commands/seed_admin.py
import os

from django.core.management.base import BaseCommand, CommandError

from camps.services.accounts import ensure_admin


class Command(BaseCommand):
    help = "Ensure the administrator account exists (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--email", default=os.getenv("ADMIN_EMAIL", ""))
        parser.add_argument("--password", default=os.getenv("ADMIN_PASSWORD", ""))
        parser.add_argument("--name", default=os.getenv("ADMIN_NAME", "Administrator"))

    def handle(self, *args, **opts):
        email, password = opts["email"], opts["password"]
        if not email or not password:
            raise CommandError("Set ADMIN_EMAIL and ADMIN_PASSWORD (or pass --email/--password).")
        user, created = ensure_admin(email, password, opts["name"])
        if created:
            self.stdout.write(self.style.SUCCESS(f"created admin: {user.email}"))
        else:
            self.stdout.write(self.style.WARNING(f"admin already exists: {user.email}"))
