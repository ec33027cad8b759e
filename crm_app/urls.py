from django.urls import path
from . import views

urlpatterns = [
    # Pipeline board
    path('', views.pipeline_view, name='home'),
    path('pipeline/', views.pipeline_view, name='pipeline'),
    path('pipeline/move/', views.move_opportunity_view, name='move_opportunity'),
    path('pipeline/delete/', views.delete_opportunity_view, name='delete_opportunity'),

    # Client intake
    path('clients/new/', views.new_client_view, name='new_client'),
]
