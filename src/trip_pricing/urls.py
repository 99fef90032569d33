from django.urls import path

from trip_pricing import views

urlpatterns = [
    path("api/v1/health", views.health_view, name="health"),
    path("api/v1/pricing/calculate", views.pricing_calculate_view, name="pricing-calculate"),
    path("api/v1/route-scenarios", views.route_scenarios_view, name="route-scenarios"),
    path("api/v1/stay-vs-return", views.stay_vs_return_view, name="stay-vs-return"),
    path("api/v1/flexibility-score", views.flexibility_score_view, name="flexibility-score"),
]
