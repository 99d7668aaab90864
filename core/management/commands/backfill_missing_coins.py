from django.core.management.base import BaseCommand

from core.services import backfill_missing_coins


class Command(BaseCommand):
	help = "Generate demo coins for meme-coin poll votes that never received one."

	def add_arguments(self, parser):
		parser.add_argument("--dry-run", action="store_true", help="List the votes without creating coins")

	def handle(self, *args, **options):
		dry_run = options["dry_run"]
		handled = backfill_missing_coins(dry_run=dry_run)
		for vote, coin in handled:
			if coin is None:
				self.stdout.write(f"vote {vote.pk}: poll {vote.poll_id} option {vote.option} has no coin")
			else:
				self.stdout.write(f"vote {vote.pk}: created {coin.coin_symbol} ({coin.coin_address})")
		verb = "would backfill" if dry_run else "backfilled"
		self.stdout.write(self.style.SUCCESS(f"{verb} {len(handled)} coin(s)"))
