from __future__ import annotations

from django.contrib.auth import get_user_model
from django.test import TestCase

from .models import Division

User = get_user_model()


class EmployeeModelTests(TestCase):
    def test_access_levels(self):
        admin = User.objects.create_user(username="admin", password="pass123", access_level=1)
        hr = User.objects.create_user(username="hr", password="pass123", access_level=2)
        staff = User.objects.create_user(username="staff", password="pass123")

        self.assertTrue(admin.is_admin and admin.is_hr)
        self.assertTrue(hr.is_hr)
        self.assertFalse(hr.is_admin)
        self.assertEqual(staff.access_level, User.AccessLevel.STAFF)
        self.assertFalse(staff.is_hr)

    def test_display_name_and_division_head(self):
        head = User.objects.create_user(username="head", password="pass123", first_name="Dewi", last_name="Lestari")
        division = Division.objects.create(name="Finance", head=head)
        member = User.objects.create_user(username="member", password="pass123", division=division)

        self.assertEqual(head.display_name, "Dewi Lestari")
        self.assertEqual(member.display_name, "member")
        self.assertEqual(member.division.head, head)
        self.assertEqual(list(head.headed_divisions.all()), [division])
        self.assertEqual(list(division.members.all()), [member])
