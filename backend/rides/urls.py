from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    # Rider APIs
    path('fare/', views.fare_quote, name='fare-quote'),
    path('create/', views.create_ride, name='create-ride'),
    path('<int:ride_id>/cancel/', views.cancel_ride, name='cancel-ride'),

    # Driver ride actions
    path('<int:ride_id>/accept/', views.accept_ride, name='accept-ride'),
    path('<int:ride_id>/start/', views.start_ride, name='start-ride'),
    path('<int:ride_id>/complete/', views.complete_ride, name='complete-ride'),
]
