from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand, CommandError

from operator_core.permissions import ADMIN, ALL_ROLES


class Command(BaseCommand):
    help = "Create the operator role groups and optionally grant roles to a staff user."

    def add_arguments(self, parser):
        parser.add_argument("--username", help="User to make staff and grant roles to.")
        parser.add_argument(
            "--role",
            action="append",
            choices=ALL_ROLES,
            dest="roles",
            help=f"Role to grant; repeatable. Defaults to {ADMIN}.",
        )

    def handle(self, *args, **options):
        created = [name for name in ALL_ROLES if Group.objects.get_or_create(name=name)[1]]
        if created:
            self.stdout.write(self.style.SUCCESS(f"Created groups: {', '.join(created)}"))
        else:
            self.stdout.write("Operator groups already exist.")

        username = options.get("username")
        if not username:
            return

        User = get_user_model()
        try:
            user = User.objects.get(username=username)
        except User.DoesNotExist:
            raise CommandError(f"User {username!r} not found.")
        roles = options.get("roles") or [ADMIN]
        user.is_staff = True
        user.save(update_fields=["is_staff"])
        user.groups.add(*Group.objects.filter(name__in=roles))
        self.stdout.write(self.style.SUCCESS(f"Granted {', '.join(roles)} to {user}."))
