"""URL routing for the API + the local chain stub.


The /api/ namespace exposes the vote, payment and package operations; /stub/chain/
exposes the deterministic chain simulator used when CHAIN_MODE=stub.
"""

from django.contrib import admin
from django.urls import path, include


urlpatterns = [
	path("admin/", admin.site.urls),
	path("api/", include("api.urls")),
	path("stub/chain/", include("chain_stub.urls")),
]
