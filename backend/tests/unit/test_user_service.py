"""Unit tests for registration, profile edits and admin user edits."""

import pytest
from sqlmodel import select

from portal.core.errors import NotFoundError, ValidationError
from portal.models import AuditLog, Role, RoleName, User, VerificationStatus
from portal.schemas.admin import BulkUserRequest
from portal.schemas.users import AdminUserUpdate, ProfileFields, RegistrationRequest
from portal.services.users import UserService, profile_changes


def registration(**overrides) -> RegistrationRequest:
    data = {
        "first_name": "Nora",
        "last_name": "Newcomer",
        "email": "Nora@Test.com",
        "phone": "(313) 555-0199",
        "unit_number": "12b",
        "is_resident": True,
        "is_owner": False,
    }
    data.update(overrides)
    return RegistrationRequest(**data)


def fields_for(user: User, **overrides) -> ProfileFields:
    data = {
        "first_name": user.first_name,
        "last_name": user.last_name,
        "phone": user.phone,
        "unit_number": user.unit_number,
        "is_resident": RoleName.RESIDENT.value in user.role_names,
        "is_owner": RoleName.OWNER.value in user.role_names,
    }
    data.update(overrides)
    return ProfileFields(**data)


async def actions(session) -> list[str]:
    return list((await session.execute(select(AuditLog.action).order_by(AuditLog.id))).scalars().all())


@pytest.mark.asyncio
class TestRegister:
    async def test_creates_pending_user_and_notifies_verifiers(
        self, test_session, email_sender, verifier_user
    ):
        user = await UserService(test_session, email_sender).register(registration())

        assert user.email == "nora@test.com"
        assert user.unit_number == "12B"
        assert user.verification_status == VerificationStatus.PENDING
        assert user.role_names == {"resident"}

        [message] = email_sender.sent_to(verifier_user.email)
        assert "Nora Newcomer" in message.text
        assert "Resident: Yes" in message.text
        assert await actions(test_session) == ["user_registered", "verifier_notification_sent"]

    async def test_duplicate_email(self, test_session, email_sender, resident_user):
        with pytest.raises(ValidationError, match="already exists"):
            await UserService(test_session, email_sender).register(
                registration(email="RESIDENT@test.com")
            )

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"first_name": " "}, "First and last name are required"),
            ({"last_name": "x" * 101}, "100 characters or less"),
            ({"phone": "call me"}, "Invalid phone number format"),
            ({"unit_number": "1234567"}, "6 characters or less"),
            ({"unit_number": "1-A"}, "alphanumeric only"),
            ({"is_resident": False, "is_owner": False}, "At least one of resident or owner"),
        ],
    )
    async def test_field_validation(self, test_session, email_sender, overrides, message):
        with pytest.raises(ValidationError, match=message):
            await UserService(test_session, email_sender).register(registration(**overrides))

    async def test_no_verifiers_records_skip(self, test_session, email_sender):
        await UserService(test_session, email_sender).register(registration())

        assert email_sender.sent == []
        assert await actions(test_session) == ["user_registered", "verifier_notification_skipped"]

    async def test_failed_verifier_email_alerts_admins(
        self, test_session, email_sender, verifier_user, admin_user
    ):
        email_sender.fail_for.add(verifier_user.email)

        await UserService(test_session, email_sender).register(registration())

        assert "verifier_notification_failed" in await actions(test_session)
        [alert] = email_sender.sent_to(admin_user.email)
        assert verifier_user.email in alert.text


@pytest.mark.asyncio
class TestUpdateProfile:
    """Tests for self-service edits and re-verification."""

    async def test_no_changes(self, test_session, email_sender, resident_user):
        result = await UserService(test_session, email_sender).update_profile(
            resident_user, fields_for(resident_user)
        )

        assert result.reverify is False
        assert result.message == "No changes detected"
        assert resident_user.verification_status == VerificationStatus.VERIFIED
        assert await actions(test_session) == []

    async def test_verified_user_goes_back_to_pending(
        self, test_session, email_sender, resident_user, verifier_user
    ):
        result = await UserService(test_session, email_sender).update_profile(
            resident_user, fields_for(resident_user, unit_number="402")
        )

        assert result.reverify is True
        assert result.changes == ['Unit: "401" → "402"']
        assert resident_user.verification_status == VerificationStatus.PENDING
        assert resident_user.unit_number == "402"
        assert 'Unit: "401" → "402"' in resident_user.verification_comment

        assert len(email_sender.sent_to(resident_user.email)) == 1
        assert len(email_sender.sent_to(verifier_user.email)) == 1

        row = (
            await test_session.execute(select(AuditLog).where(AuditLog.action == "profile_updated"))
        ).scalar_one()
        assert row.details["reverify"] is True
        assert row.details["changes"] == result.changes

    async def test_pending_user_stays_pending_without_reverify(
        self, test_session, email_sender, pending_user
    ):
        result = await UserService(test_session, email_sender).update_profile(
            pending_user, fields_for(pending_user, first_name="Penelope")
        )

        assert result.reverify is False
        assert pending_user.verification_status == VerificationStatus.PENDING
        assert pending_user.first_name == "Penelope"
        assert email_sender.sent == []

    async def test_owner_flag_change_updates_roles(self, test_session, email_sender, resident_user):
        result = await UserService(test_session, email_sender).update_profile(
            resident_user, fields_for(resident_user, is_owner=True)
        )

        assert result.changes == ["Owner: No → Yes"]
        assert {"resident", "owner"} <= resident_user.role_names

    async def test_unit_case_is_not_a_change(self, test_session, email_sender, pending_user):
        pending_user.unit_number = "5A"
        result = await UserService(test_session, email_sender).update_profile(
            pending_user, fields_for(pending_user, unit_number="5a")
        )

        assert result.changes == []

    async def test_suspicious_input_flagged(self, test_session, email_sender, pending_user):
        await UserService(test_session, email_sender).update_profile(
            pending_user, fields_for(pending_user, last_name="x'; DROP TABLE users")
        )

        row = (
            await test_session.execute(select(AuditLog).where(AuditLog.action == "profile_updated"))
        ).scalar_one()
        assert row.details["suspiciousInput"] == ["last_name"]


def test_profile_changes_lists_every_field(resident_user_stub):
    fields = ProfileFields(
        first_name="Rae",
        last_name="Resident",
        phone="555-0101",
        unit_number="401",
        is_resident=False,
        is_owner=True,
    )

    assert profile_changes(resident_user_stub, fields) == [
        'First name: "Rita" → "Rae"',
        'Phone: "555-0100" → "555-0101"',
        "Resident: Yes → No",
        "Owner: No → Yes",
    ]


@pytest.fixture
def resident_user_stub() -> User:
    return User(
        first_name="Rita",
        last_name="Resident",
        email="r@test.com",
        phone="555-0100",
        unit_number="401",
        roles=[Role(name="resident")],
    )


@pytest.mark.asyncio
class TestAdminUpdate:
    """Tests for administrative edits."""

    async def test_sets_roles_and_committees_without_touching_status(
        self, test_session, email_sender, admin_user, pending_user, committee
    ):
        data = AdminUserUpdate(
            first_name="Penny",
            last_name="Pending",
            phone="555-0100",
            unit_number="501",
            roles=["publisher", "resident"],
            committees=[committee.id],
        )

        user = await UserService(test_session, email_sender).admin_update(
            pending_user.id, data, admin_user
        )

        assert user.role_names == {"publisher", "resident"}
        assert user.committee_ids == {committee.id}
        assert user.verification_status == VerificationStatus.PENDING
        assert await actions(test_session) == ["user_roles_updated", "user_committees_updated"]

    async def test_profile_change_recorded(self, test_session, email_sender, admin_user, resident_user):
        data = AdminUserUpdate(
            first_name="Rita",
            last_name="Resident",
            phone="555-0100",
            unit_number="410",
            roles=["user", "resident"],
            committees=[],
        )

        await UserService(test_session, email_sender).admin_update(resident_user.id, data, admin_user)

        assert resident_user.verification_status == VerificationStatus.VERIFIED
        row = (await test_session.execute(select(AuditLog))).scalar_one()
        assert row.action == "user_profile_updated"
        assert row.details["changes"] == {"unit_number": {"from": "401", "to": "410"}}

    async def test_unknown_role(self, test_session, email_sender, admin_user, resident_user):
        data = AdminUserUpdate(
            first_name="Rita",
            last_name="Resident",
            phone="555-0100",
            unit_number="401",
            roles=["wizard"],
            committees=[],
        )

        with pytest.raises(ValidationError, match="Invalid role names: wizard"):
            await UserService(test_session, email_sender).admin_update(
                resident_user.id, data, admin_user
            )

    async def test_unknown_committee(self, test_session, email_sender, admin_user, resident_user):
        data = AdminUserUpdate(
            first_name="Rita",
            last_name="Resident",
            phone="555-0100",
            unit_number="401",
            roles=["user"],
            committees=[12345],
        )

        with pytest.raises(ValidationError, match="committee IDs are invalid"):
            await UserService(test_session, email_sender).admin_update(
                resident_user.id, data, admin_user
            )


@pytest.mark.asyncio
class TestBulkUpdate:
    async def test_assign_role(self, test_session, email_sender, admin_user, resident_user, verifier_user):
        data = BulkUserRequest(
            action="assign_role",
            user_ids=[resident_user.id, verifier_user.id, 9999],
            role_name="verifier",
        )

        result = await UserService(test_session, email_sender).bulk_update(data, admin_user)

        assert result.message == 'Role "verifier" assigned to 2 of 3 users'
        assert [(r.user_id, r.success, r.error) for r in result.results] == [
            (resident_user.id, True, None),
            (verifier_user.id, True, None),
            (9999, False, "User not found"),
        ]
        assert "verifier" in resident_user.role_names
        rows = (
            await test_session.execute(select(AuditLog).order_by(AuditLog.id))
        ).scalars().all()
        assert [row.action for row in rows] == ["user_roles_updated", "user_roles_updated"]
        assert rows[0].details["wasAlreadyAssigned"] is False
        assert rows[1].details["wasAlreadyAssigned"] is True
        assert rows[0].details["bulkAction"] == "assign_role"

    async def test_add_committee(self, test_session, email_sender, admin_user, resident_user, committee):
        data = BulkUserRequest(
            action="add_committee", user_ids=[resident_user.id], committee_id=committee.id
        )

        result = await UserService(test_session, email_sender).bulk_update(data, admin_user)

        assert result.message == '1 of 1 users added to committee "Finance"'
        assert committee.id in resident_user.committee_ids
        row = (await test_session.execute(select(AuditLog))).scalar_one()
        assert row.action == "user_committees_updated"
        assert row.details["committeeName"] == "Finance"
        assert row.details["wasAlreadyMember"] is False

    async def test_unknown_role(self, test_session, email_sender, admin_user, resident_user):
        data = BulkUserRequest(action="assign_role", user_ids=[resident_user.id], role_name="wizard")

        with pytest.raises(ValidationError, match='Role "wizard" not found'):
            await UserService(test_session, email_sender).bulk_update(data, admin_user)

    async def test_role_name_required(self, test_session, email_sender, admin_user, resident_user):
        data = BulkUserRequest(action="assign_role", user_ids=[resident_user.id])

        with pytest.raises(ValidationError, match="role_name is required"):
            await UserService(test_session, email_sender).bulk_update(data, admin_user)

    async def test_unknown_committee(self, test_session, email_sender, admin_user, resident_user):
        data = BulkUserRequest(action="add_committee", user_ids=[resident_user.id], committee_id=4242)

        with pytest.raises(NotFoundError, match="Committee not found"):
            await UserService(test_session, email_sender).bulk_update(data, admin_user)
