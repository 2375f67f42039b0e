"""Tests for the identity sync service."""

import asyncio
import gc
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from src.clinic.services.auth.models import VerifiedClaims
from src.clinic.services.directory import (
    DirectoryUnavailableError,
    InvalidRoleError,
    NewUser,
    Role,
    UserNotFoundError,
)
from src.clinic.services.sync import IdentitySyncService, SyncFailedError


def claims_for(subject: str, email: str | None = "a@example.com", **metadata) -> VerifiedClaims:
    return VerifiedClaims(
        subject=subject,
        issuer="https://test.supabase.co/auth/v1",
        audience="authenticated",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        email=email,
        user_metadata=metadata,
    )


@pytest.mark.asyncio
class TestEnsureSynced:
    """Tests for IdentitySyncService.ensure_synced."""

    async def test_first_sight_creates_record(self, sync_service, fake_directory):
        user = await sync_service.ensure_synced(
            claims_for("user_1", full_name="Ada Lovelace"), requested_role="PATIENT"
        )

        assert user.auth_id == "user_1"
        assert user.email == "a@example.com"
        assert user.name == "Ada Lovelace"
        assert user.role == Role.PATIENT
        assert user.email_verified is not None
        assert fake_directory.create_calls == 1

    async def test_second_call_returns_same_record(self, sync_service, fake_directory):
        first = await sync_service.ensure_synced(claims_for("user_1"), requested_role="PATIENT")
        second = await sync_service.ensure_synced(claims_for("user_1"), requested_role="PATIENT")

        assert first.id == second.id
        assert fake_directory.create_calls == 1
        assert len(fake_directory.records) == 1

    async def test_existing_record_not_updated_from_claims(self, sync_service, fake_directory):
        original = fake_directory.add("user_1", Role.PATIENT, email="old@example.com")

        user = await sync_service.ensure_synced(
            claims_for("user_1", email="new@example.com"), requested_role="PROVIDER"
        )

        assert user == original
        assert fake_directory.create_calls == 0

    async def test_profile_hints_override_claims(self, sync_service):
        user = await sync_service.ensure_synced(
            claims_for("user_1", full_name="Token Name"),
            requested_role="PROVIDER",
            profile_hints={"email": "hint@example.com", "name": "Hint Name", "specialty": "Oncology"},
        )

        assert user.email == "hint@example.com"
        assert user.name == "Hint Name"
        assert user.specialty == "Oncology"

    async def test_concurrent_first_sight_yields_one_record(self, sync_service, fake_directory):
        fake_directory.find_barrier = threading.Barrier(2)
        claims = claims_for("user_race")

        first, second = await asyncio.gather(
            sync_service.ensure_synced(claims, requested_role="PATIENT"),
            sync_service.ensure_synced(claims, requested_role="PATIENT"),
        )

        assert first.id == second.id
        assert len(fake_directory.records) == 1
        assert fake_directory.create_calls == 2

    async def test_admin_role_rejected_for_new_record(self, sync_service, fake_directory):
        with pytest.raises(InvalidRoleError):
            await sync_service.ensure_synced(claims_for("user_1"), requested_role="ADMIN")

        assert fake_directory.records == {}

    async def test_missing_role_rejected_for_new_record(self, sync_service):
        with pytest.raises(InvalidRoleError):
            await sync_service.ensure_synced(claims_for("user_1"))

    async def test_missing_email_fails(self, sync_service, fake_directory):
        with pytest.raises(SyncFailedError):
            await sync_service.ensure_synced(claims_for("user_1", email=None), requested_role="PATIENT")

        assert fake_directory.records == {}

    async def test_store_failure_raises_sync_failed(self, sync_service, fake_directory):
        fake_directory.fail_with = DirectoryUnavailableError("down")

        with pytest.raises(SyncFailedError):
            await sync_service.ensure_synced(claims_for("user_1"), requested_role="PATIENT")

    async def test_store_timeout_raises_sync_failed(self, fake_directory, writeback, mock_analytics):
        def find_by_external_identity(auth_id):
            time.sleep(0.2)
            return None

        fake_directory.find_by_external_identity = find_by_external_identity
        sync = IdentitySyncService(
            fake_directory, writeback, store_timeout=0.05, analytics=mock_analytics
        )

        with pytest.raises(SyncFailedError, match="timed out"):
            await sync.ensure_synced(claims_for("user_1"), requested_role="PATIENT")

        # Let the abandoned store call finish before the loop closes
        await asyncio.sleep(0.3)

    async def test_abandoned_store_failure_is_retrieved(
        self, fake_directory, writeback, mock_analytics
    ):
        loop = asyncio.get_running_loop()
        unhandled = []
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(lambda _loop, context: unhandled.append(context))

        def find_by_external_identity(auth_id):
            time.sleep(0.1)
            raise DirectoryUnavailableError("late failure")

        fake_directory.find_by_external_identity = find_by_external_identity
        sync = IdentitySyncService(
            fake_directory, writeback, store_timeout=0.02, analytics=mock_analytics
        )

        try:
            with pytest.raises(SyncFailedError, match="timed out"):
                await sync.ensure_synced(claims_for("user_1"), requested_role="PATIENT")
            await asyncio.sleep(0.3)
            gc.collect()
        finally:
            loop.set_exception_handler(previous_handler)

        assert not [c for c in unhandled if "never retrieved" in c.get("message", "")]

    async def test_creation_enqueues_role_writeback(self, sync_service, writeback):
        await sync_service.ensure_synced(claims_for("user_1"), requested_role="PROVIDER")

        assert writeback.pending == 1
        job = writeback._queue.get_nowait()
        assert (job.auth_id, job.role) == ("user_1", Role.PROVIDER)

    async def test_existing_record_does_not_enqueue(self, sync_service, fake_directory, writeback):
        fake_directory.add("user_1")

        await sync_service.ensure_synced(claims_for("user_1"), requested_role="PATIENT")

        assert writeback.pending == 0

    async def test_sync_does_not_wait_for_writeback(self, sync_service, mock_provider):
        mock_provider.update_role_metadata.side_effect = RuntimeError("provider down")

        user = await sync_service.ensure_synced(claims_for("user_1"), requested_role="PATIENT")

        assert user.auth_id == "user_1"
        mock_provider.update_role_metadata.assert_not_called()


@pytest.mark.asyncio
class TestProvision:
    """Tests for explicit provisioning."""

    async def test_provision_creates(self, sync_service, mock_analytics):
        user, created = await sync_service.provision(
            NewUser(auth_id="user_1", email="a@example.com", role="PROVIDER", specialty="Cardiology")
        )

        assert created is True
        assert user.specialty == "Cardiology"
        mock_analytics.capture.assert_called_once_with(
            distinct_id="user_1", event="user_provisioned", properties={"role": "PROVIDER"}
        )

    async def test_retry_returns_existing(self, sync_service, fake_directory, writeback):
        new_user = NewUser(auth_id="user_1", email="a@example.com", role="PATIENT")

        first, _ = await sync_service.provision(new_user)
        second, created = await sync_service.provision(new_user)

        assert created is False
        assert second.id == first.id
        assert len(fake_directory.records) == 1
        assert writeback.pending == 1

    async def test_rejects_invalid_role_before_store(self, sync_service, fake_directory):
        with pytest.raises(InvalidRoleError):
            await sync_service.provision(
                NewUser(auth_id="user_1", email="a@example.com", role="SUPERUSER")
            )

        assert fake_directory.create_calls == 0

    async def test_duplicate_without_record_raises_sync_failed(self, sync_service, fake_directory):
        fake_directory.add("user_1")
        fake_directory.find_by_external_identity = lambda auth_id: None

        with pytest.raises(SyncFailedError):
            await sync_service.provision(NewUser(auth_id="user_1", email="a@example.com", role="PATIENT"))


@pytest.mark.asyncio
class TestAdministrativeChanges:
    """Tests for role and status changes."""

    async def test_change_role_updates_record_and_enqueues(self, sync_service, fake_directory, writeback):
        fake_directory.add("user_1", Role.PATIENT)

        user = await sync_service.change_role("user_1", "ADMIN")

        assert user.role == Role.ADMIN
        assert fake_directory.records["user_1"].role == Role.ADMIN
        job = writeback._queue.get_nowait()
        assert (job.auth_id, job.role) == ("user_1", Role.ADMIN)

    async def test_change_role_to_provider_keeps_specialty(self, sync_service, fake_directory):
        fake_directory.add("user_1", Role.PATIENT)

        user = await sync_service.change_role("user_1", Role.PROVIDER, specialty="Dermatology")

        assert user.specialty == "Dermatology"

    async def test_change_role_unknown_user(self, sync_service, writeback):
        with pytest.raises(UserNotFoundError):
            await sync_service.change_role("user_missing", Role.ADMIN)

        assert writeback.pending == 0

    async def test_set_active(self, sync_service, fake_directory, mock_analytics):
        fake_directory.add("user_1")

        user = await sync_service.set_active("user_1", False)

        assert user.is_active is False
        mock_analytics.capture.assert_called_once_with(
            distinct_id="user_1", event="user_deactivated"
        )
