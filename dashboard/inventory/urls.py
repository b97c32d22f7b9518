from django.urls import path
from . import views

app_name = "inventory"

urlpatterns = [
    path("", views.inventory_list, name="list"),
    path("create/", views.create_inventory, name="create"),
    path("edit/<str:slug>/", views.edit_inventory, name="edit"),
    path("<str:slug>/delete/", views.delete_inventory, name="delete"),
]
