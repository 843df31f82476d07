from django.contrib import admin
from django.urls import path, include

from offerings import views as offering_views
from payments import views as payment_views
from registrations import views as registration_views

admin.site.site_header = "Improv School — Admin"
admin.site.site_title = "Improv School"
admin.site.index_title = "Management"

urlpatterns = [
    path("admin/", admin.site.urls),

    # JSON API used by the site's registration form
    path("api/submit/", registration_views.submit, name="api_submit"),
    path("api/payment-callback/", payment_views.liqpay_callback, name="api_payment_callback"),
    path("api/offerings/", offering_views.upcoming, name="api_offerings"),

    path("payments/", include("payments.urls")),
]
