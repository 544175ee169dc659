from django.urls import path
from . import views

app_name = 'maps'

urlpatterns = [
    path('coordinates/', views.get_coordinates, name='coordinates'),
    path('distance-time/', views.get_distance_time, name='distance-time'),
    path('suggestions/', views.get_suggestions, name='suggestions'),
]
