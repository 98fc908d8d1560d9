"""URL routing for the API + the local chain stub.


The /api/ namespace exposes custody operations; /stub/chain/ exposes the
deterministic chain stub used when CHAIN_BACKEND=stub.
"""

from django.urls import path, include


urlpatterns = [
	path("api/", include("api.urls")),
	path("stub/chain/", include("chain_stub.urls")),
]
