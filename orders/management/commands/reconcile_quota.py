from django.core.management.base import BaseCommand

from orders.models import Order, OrderStatus
from orders.services import OrderLifecycleService


class Command(BaseCommand):
    help = "Retry quota deduction for completed orders whose quota was never consumed"

    def add_arguments(self, parser):
        parser.add_argument('--merchant', type=int, help='Only reconcile this merchant id')
        parser.add_argument('--dry-run', action='store_true', help='List orders without deducting')

    def handle(self, *args, **options):
        qs = Order.objects.filter(status=OrderStatus.DONE, quota_consumed=False)
        if options.get('merchant'):
            qs = qs.filter(merchant_id=options['merchant'])

        if options['dry_run']:
            for order in qs.order_by('completed_at', 'id'):
                self.stdout.write(f"{order.order_number} merchant={order.merchant_id} total={order.total}")
            self.stdout.write(self.style.WARNING(f"{qs.count()} order(s) pending reconciliation"))
            return

        fixed, failed = OrderLifecycleService.reconcile_quota(qs)
        self.stdout.write(self.style.SUCCESS(f"Reconciled {fixed} order(s)"))
        if failed:
            self.stdout.write(self.style.ERROR(f"{failed} order(s) still without quota"))
