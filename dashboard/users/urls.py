from django.urls import path
from . import views

app_name = "users"

urlpatterns = [
    path("", views.user_list, name="list"),
    path("create/", views.create_user, name="create"),
    path("edit/<str:slug>/", views.edit_user, name="edit"),
    path("<str:slug>/delete/", views.delete_user, name="delete"),
    path("<str:slug>/change-password/", views.change_password, name="change_password"),
]
