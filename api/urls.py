"""Public API surface.

- /polls/<id>/vote: cast a vote (POST) or read vote status (GET)
- /polls/<id>/reward/retry: re-attempt a failed coin reward
- /verify-payment, /admin/add-credits: credit purchases and operator grants
- /packages/*: MemeCoin package purchase and consumption
- /user/*, /polls/<id>/coins, /debug/summary: read-only views for verification
- /demo/seed: convenience helper for local runs
"""

from django.urls import path
from .views_demo import seed
from .views_ops import vote, retry, verify_payment, add_credits, purchase, consume, health, csrf
from .views_read import credits, user_coins, poll_coins, payment_info, user_packages, active_package, debug_summary


urlpatterns = [
	path("health", health),
	path("csrf", csrf),
	path("demo/seed", seed),
	path("polls/<int:poll_id>/vote", vote),
	path("polls/<int:poll_id>/reward/retry", retry),
	path("polls/<int:poll_id>/coins", poll_coins),
	path("verify-payment", verify_payment),
	path("admin/add-credits", add_credits),
	path("user/credits/<str:wallet>", credits),
	path("user/coins", user_coins),
	path("user/packages", user_packages),
	path("user/packages/active", active_package),
	path("packages/payment-info", payment_info),
	path("packages/purchase", purchase),
	path("packages/<int:package_id>/consume", consume),
	path("debug/summary", debug_summary),
]
