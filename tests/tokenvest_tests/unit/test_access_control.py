"""
Tests for admin handover and stream-creation authorizers.
"""

import pytest

from tokenvest.core.access_control import (
    AccessControl,
    AdminAuthorizer,
    SelfAdministeredAuthorizer,
    StreamCreatorAuthorizer,
    build_authorizer,
)
from tokenvest.core.exceptions import InvalidParametersError, NotAuthorizedError


@pytest.fixture
def access_control():
    return AccessControl(admin="0xAdmin")


class TestAdminHandover:
    def test_admin_is_normalized(self, access_control):
        assert access_control.admin == "0xadmin"
        assert access_control.is_admin("0XADMIN")

    def test_two_phase_handover(self, access_control):
        access_control.set_pending_admin("0xadmin", "0xnew")
        assert access_control.pending_admin == "0xnew"
        # Old admin keeps control until the new one accepts
        assert access_control.admin == "0xadmin"

        access_control.accept_admin("0xnew")
        assert access_control.admin == "0xnew"
        assert access_control.pending_admin is None

    def test_non_admin_cannot_nominate(self, access_control):
        with pytest.raises(NotAuthorizedError):
            access_control.set_pending_admin("0xmallory", "0xmallory")
        assert access_control.pending_admin is None

    def test_only_pending_admin_can_accept(self, access_control):
        access_control.set_pending_admin("0xadmin", "0xnew")
        with pytest.raises(NotAuthorizedError):
            access_control.accept_admin("0xmallory")
        with pytest.raises(NotAuthorizedError):
            access_control.accept_admin("0xadmin")
        assert access_control.admin == "0xadmin"

    def test_accept_without_nomination_fails(self, access_control):
        with pytest.raises(NotAuthorizedError):
            access_control.accept_admin("0xadmin")

    def test_renomination_replaces_pending(self, access_control):
        access_control.set_pending_admin("0xadmin", "0xfirst")
        access_control.set_pending_admin("0xadmin", "0xsecond")
        with pytest.raises(NotAuthorizedError):
            access_control.accept_admin("0xfirst")
        access_control.accept_admin("0xsecond")
        assert access_control.admin == "0xsecond"

    def test_role_changes_are_audited(self, access_control):
        access_control.set_pending_admin("0xadmin", "0xnew")
        access_control.accept_admin("0xnew")
        actions = [entry["action"] for entry in access_control.role_changes]
        assert actions == ["nominate_admin", "accept_admin"]
        assert access_control.role_changes[-1]["previous"] == "0xadmin"

    def test_empty_address_rejected(self, access_control):
        with pytest.raises(InvalidParametersError):
            access_control.set_pending_admin("0xadmin", "  ")

    def test_round_trip_keeps_pending_state(self, access_control):
        access_control.set_pending_admin("0xadmin", "0xnew")
        restored = AccessControl.from_dict(access_control.to_dict())
        restored.accept_admin("0xnew")
        assert restored.admin == "0xnew"


class TestStreamCreatorRole:
    def test_only_admin_assigns_creator(self, access_control):
        with pytest.raises(NotAuthorizedError):
            access_control.set_stream_creator("0xcreator", "0xcreator")
        access_control.set_stream_creator("0xadmin", "0xCreator")
        assert access_control.stream_creator == "0xcreator"

    def test_creator_can_be_cleared(self, access_control):
        access_control.set_stream_creator("0xadmin", "0xcreator")
        access_control.set_stream_creator("0xadmin", None)
        assert access_control.stream_creator is None


class TestAuthorizers:
    def test_admin_authorizer(self, access_control):
        authorizer = AdminAuthorizer(access_control)
        assert authorizer.authorize_create("0xADMIN") == "0xadmin"
        with pytest.raises(NotAuthorizedError):
            authorizer.authorize_create("0xcreator")

    def test_stream_creator_authorizer(self, access_control):
        authorizer = StreamCreatorAuthorizer(access_control)
        with pytest.raises(NotAuthorizedError):
            authorizer.authorize_create("0xcreator")

        access_control.set_stream_creator("0xadmin", "0xcreator")
        assert authorizer.authorize_create("0xcreator") == "0xcreator"
        assert authorizer.authorize_create("0xadmin") == "0xadmin"
        with pytest.raises(NotAuthorizedError):
            authorizer.authorize_create("0xmallory")

    def test_authorizer_follows_admin_handover(self, access_control):
        authorizer = AdminAuthorizer(access_control)
        access_control.set_pending_admin("0xadmin", "0xnew")
        access_control.accept_admin("0xnew")
        assert authorizer.authorize_create("0xnew") == "0xnew"
        with pytest.raises(NotAuthorizedError):
            authorizer.authorize_create("0xadmin")

    def test_self_administered_accepts_anyone(self):
        assert SelfAdministeredAuthorizer().authorize_create("0xAnyone") == "0xanyone"

    def test_build_authorizer_by_name(self, access_control):
        assert isinstance(build_authorizer("admin", access_control), AdminAuthorizer)
        assert isinstance(build_authorizer("stream_creator", access_control), StreamCreatorAuthorizer)
        assert isinstance(
            build_authorizer("self_administered", access_control), SelfAdministeredAuthorizer
        )
        with pytest.raises(InvalidParametersError):
            build_authorizer("root", access_control)
