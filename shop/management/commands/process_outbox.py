"""
Management command to relay outbox events.
"""
import time

from django.core.management.base import BaseCommand

from shop.infra.relay import OutboxRelay


class Command(BaseCommand):
    help = 'Publish pending outbox events and mark them processed'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=100,
            help='Maximum number of events to process in one run',
        )
        parser.add_argument(
            '--max-retries',
            type=int,
            default=5,
            help='Skip events that already failed this many times',
        )
        parser.add_argument(
            '--loop',
            action='store_true',
            help='Run in loop (for production)',
        )
        parser.add_argument(
            '--interval',
            type=int,
            default=3,
            help='Interval between loops in seconds',
        )

    def handle(self, *args, **options):
        limit = options['limit']
        interval = options['interval']

        relay = OutboxRelay(max_retries=options['max_retries'])

        if not options['loop']:
            processed = relay.process_outbox_events(limit=limit)
            self.stdout.write(self.style.SUCCESS(f'Processed {processed} events'))
            return

        self.stdout.write(f'Starting outbox relay in loop mode (interval: {interval}s)')
        while True:
            try:
                processed = relay.process_outbox_events(limit=limit)
                if processed > 0:
                    self.stdout.write(self.style.SUCCESS(f'Processed {processed} events'))
                time.sleep(interval)
            except KeyboardInterrupt:
                self.stdout.write(self.style.WARNING('Stopped by user'))
                break
