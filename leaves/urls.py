"""URL routing for the leave API."""
from django.urls import path

from . import views

app_name = "leaves"

urlpatterns = [
    path("submit/", views.submit_leave_request, name="submit"),
    path("my-requests/", views.my_leave_requests, name="my_requests"),
    path("my-balance/", views.my_leave_balance, name="my_balance"),
    path("balance/<int:year>/", views.leave_balance_by_year, name="balance_by_year"),
    path("pending-approval/list/", views.pending_approval_list, name="pending_approval"),
    path("admin/all-requests/", views.all_leave_requests, name="all_requests"),
    path(
        "balances/<int:employee_id>/<int:year>/",
        views.adjust_leave_balance,
        name="adjust_balance",
    ),
    path("attachments/<str:token>/", views.attachment_download, name="attachment_download"),
    path("<int:pk>/", views.leave_request_detail, name="detail"),
    path("<int:pk>/approve/", views.approve_leave_request, name="approve"),
    path("<int:pk>/reject/", views.reject_leave_request, name="reject"),
    path("<int:pk>/cancel/", views.cancel_leave_request, name="cancel"),
    path(
        "<int:pk>/attachments/<int:index>/",
        views.attachment_link,
        name="attachment_link",
    ),
]
