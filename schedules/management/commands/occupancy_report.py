import json

from django.core.management.base import BaseCommand, CommandError

from schedules.domain import parse_date
from schedules.exceptions import SchedulingError
from schedules.models import OccupancyEntity
from schedules.services import calculate_detailed_occupancy, calculate_occupancy
from schedules.services.occupancy_service import GROUP_BY_CHOICES


class Command(BaseCommand):
    help = "Prints the occupancy of a clinic, practitioner or room for a date range as JSON"

    def add_arguments(self, parser):
        parser.add_argument("kind", choices=OccupancyEntity.values)
        parser.add_argument("entity_id", type=int)
        parser.add_argument("start_date", help="YYYY-MM-DD")
        parser.add_argument("end_date", help="YYYY-MM-DD")
        parser.add_argument("--group-by", choices=GROUP_BY_CHOICES, default=None)
        parser.add_argument(
            "--detailed",
            action="store_true",
            help="Clinic only: break the figures down per practitioner and per room.",
        )

    def handle(self, *args, **options):
        kind = options["kind"]
        if options["detailed"] and kind != OccupancyEntity.CLINIC:
            raise CommandError("--detailed is only available for clinics.")

        try:
            start_date = parse_date(options["start_date"])
            end_date = parse_date(options["end_date"])
            if options["detailed"]:
                report = calculate_detailed_occupancy(options["entity_id"], start_date, end_date)
            else:
                report = calculate_occupancy(
                    kind, options["entity_id"], start_date, end_date, group_by=options["group_by"],
                )
        except SchedulingError as e:
            raise CommandError(e.message)

        self.stdout.write(json.dumps(report, indent=2))
