from django.urls import path, include
from django.views.generic import RedirectView

urlpatterns = [
    path('', RedirectView.as_view(url='/admin/inventory/', permanent=True), name='root'),
    path('', include('main.urls')),
    path('admin/inventory/', include('inventory.urls')),
    path('admin/users/', include('users.urls')),
]
