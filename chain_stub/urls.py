from django.urls import path
from .views import state, set_owner, set_approval, set_erc20


urlpatterns = [
	path("state", state),
	path("owner", set_owner),
	path("approval", set_approval),
	path("erc20", set_erc20),
]
