from django.core.management.base import BaseCommand, CommandError
from memberships.models import MembershipType
from services.exceptions import ServiceError
from services.membership import extend_membership


class Command(BaseCommand):
    help = "Extend an account's memberships by a number of days."

    def add_arguments(self, parser):
        parser.add_argument("--user", type=int, required=True, help="Account id.")
        parser.add_argument(
            "--type",
            action="append",
            choices=MembershipType.values,
            dest="types",
            help="Membership type to extend; repeat for both (default: RIDER and DRIVER).",
        )
        parser.add_argument("--days", type=float, required=True, help="Days to add (1..3650).")

    def handle(self, *args, **options):
        types = options["types"] or MembershipType.values

        try:
            memberships = extend_membership(options["user"], types, options["days"])
        except ServiceError as exc:
            raise CommandError(exc.message)

        for membership in memberships:
            self.stdout.write(
                self.style.SUCCESS(
                    f"{membership.type} membership for user {options['user']} now expires {membership.expiry_date.isoformat()}"
                )
            )
