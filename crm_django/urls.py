from django.urls import include, path

urlpatterns = [
    path('', include('crm_app.urls')),
]
