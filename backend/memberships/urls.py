from django.urls import path
from .views import (
    MyMembershipView,
    MembershipExtendView,
    MembershipGrantView,
)

urlpatterns = [
    path("me/", MyMembershipView.as_view(), name="membership-me"),
    path("extend/", MembershipExtendView.as_view(), name="membership-extend"),
    path("grant/", MembershipGrantView.as_view(), name="membership-grant"),
]
