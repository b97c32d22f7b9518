from django.urls import path
from . import views

urlpatterns = [
    # Authentication
    path("login/", views.user_login, name="user_login"),
    path("logout/", views.logout_view, name="logout"),

    # JSON routes
    path("api/login", views.api_login, name="api_login"),
    path("api/data", views.api_data, name="api_data"),

    # Upstream rewrite for API calls and stored images
    path("v1/<path:path>", views.upstream_proxy, name="upstream_proxy"),
]
