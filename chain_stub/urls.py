from django.urls import path
from .views import usdt_transfer, holdings, fund_gas


urlpatterns = [
	path("usdt-transfer", usdt_transfer),
	path("holdings/<str:wallet>", holdings),
	path("fund-gas", fund_gas),
]
