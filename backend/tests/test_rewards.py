"""
Reward claim tests.

Verifies:
- One claim per (user, task); unknown and hidden tasks are refused
- Approval credits the ledger exactly once; approved claims stay approved
- The completion bonus is granted once, after every required task
- Multipart proof uploads land in the right proof slot
- Task catalog administration
"""

import io
import os

import pytest

from app.extensions import db
from app.models import PointsAdjustment, RewardClaim, RewardTask, User
from app.models.rewards import COMPLETION_BONUS_TASK_ID
from app.services import reward_service
from app.services.storage_service import classify_upload
from conftest import make_task


@pytest.fixture
def tasks(db_session):
    return {
        "follow-ig": make_task("follow-ig", "Follow Us On IG", 5, sort_order=1),
        "google-review": make_task("google-review", "Google Review", 3, sort_order=2),
        "bring-friend": make_task("bring-friend", "Bring a Friend", 2, is_required=False, sort_order=3),
    }


def _claim(client, headers, task_id, proof_type="text", proof_text="done"):
    return client.post(
        "/api/rewards/claim",
        json={"task_id": task_id, "proof_type": proof_type, "proof_text": proof_text},
        headers=headers,
    )


def _decide(client, headers, claim_id, status, notes=None):
    body = {"status": status}
    if notes is not None:
        body["admin_notes"] = notes
    return client.put(f"/api/rewards/admin/requests/{claim_id}", json=body, headers=headers)


def _balance(user_id):
    db.session.expire_all()
    return db.session.get(User, user_id).reward_points


# =============================================================================
# SUBMISSION
# =============================================================================


class TestClaimSubmission:

    def test_text_claim_is_pending_with_task_snapshot(self, client, member_headers, tasks):
        resp = _claim(client, member_headers, "follow-ig", proof_text="  @alice  ")

        assert resp.status_code == 201
        claim = resp.json["data"]
        assert claim["status"] == "pending"
        assert claim["task_title"] == "Follow Us On IG"
        assert claim["amount"] == 5
        assert claim["proof_text"] == "@alice"

    def test_second_claim_for_same_task_is_refused(self, client, member_headers, tasks):
        assert _claim(client, member_headers, "follow-ig").status_code == 201

        resp = _claim(client, member_headers, "follow-ig")

        assert resp.status_code == 400
        assert resp.json["message"] == "Task already claimed"
        assert db.session.query(RewardClaim).count() == 1

    def test_unique_constraint_catches_claims_that_pass_the_lookup(
        self, client, member_headers, tasks, monkeypatch
    ):
        assert _claim(client, member_headers, "follow-ig").status_code == 201
        # both requests saw no existing claim before either inserted
        monkeypatch.setattr(reward_service, "_has_claim", lambda user_id, task_id: False)

        resp = _claim(client, member_headers, "follow-ig")

        assert resp.status_code == 400
        assert resp.json["message"] == "Task already claimed"
        assert db.session.query(RewardClaim).count() == 1

    @pytest.mark.parametrize(
        "body",
        [
            {"task_id": "follow-ig", "proof_type": "text", "proof_text": 42},
            {"task_id": "follow-ig", "proof_type": "text", "proof_text": {"handle": "@alice"}},
            {"task_id": {"id": "follow-ig"}, "proof_type": "text", "proof_text": "done"},
        ],
    )
    def test_non_text_fields_are_rejected(self, client, member_headers, tasks, body):
        resp = client.post("/api/rewards/claim", json=body, headers=member_headers)

        assert resp.status_code == 400
        assert db.session.query(RewardClaim).count() == 0

    def test_other_members_can_claim_the_same_task(
        self, client, member_headers, other_member_headers, tasks
    ):
        assert _claim(client, member_headers, "follow-ig").status_code == 201
        assert _claim(client, other_member_headers, "follow-ig").status_code == 201

    def test_unknown_task(self, client, member_headers, tasks):
        resp = _claim(client, member_headers, "climb-everest")
        assert resp.status_code == 400
        assert resp.json["message"] == "Invalid task ID"

    def test_hidden_task(self, client, member_headers, tasks):
        make_task("secret", "Secret Task", 9, is_visible=False)
        resp = _claim(client, member_headers, "secret")
        assert resp.status_code == 400

    def test_invalid_proof_type(self, client, member_headers, tasks):
        resp = _claim(client, member_headers, "follow-ig", proof_type="hologram")
        assert resp.status_code == 400

    def test_task_list_reflects_claims_and_hides_hidden_tasks(self, client, member_headers, tasks):
        make_task("secret", "Secret Task", 9, is_visible=False)
        _claim(client, member_headers, "google-review")

        resp = client.get("/api/rewards/tasks", headers=member_headers)

        listed = {t["id"]: t for t in resp.json["data"]}
        assert list(listed) == ["follow-ig", "google-review", "bring-friend"]
        assert listed["google-review"]["completed"] is True
        assert listed["google-review"]["status"] == "pending"
        assert listed["follow-ig"]["completed"] is False


class TestProofUploads:

    def test_multipart_image_is_stored_and_linked(self, app, client, member_headers, tasks):
        resp = client.post(
            "/api/rewards/claim",
            data={
                "task_id": "follow-ig",
                "proof_type": "image",
                "proofImage": (io.BytesIO(b"\x89PNG fake"), "selfie wall.png", "image/png"),
            },
            content_type="multipart/form-data",
            headers=member_headers,
        )

        assert resp.status_code == 201
        url = resp.json["data"]["proof_image_url"]
        assert url.startswith("/uploads/") and url.endswith(".png")
        stored = os.path.join(app.config["UPLOAD_FOLDER"], url.rsplit("/", 1)[1])
        assert os.path.exists(stored)

        served = client.get(url)
        assert served.status_code == 200
        assert served.data == b"\x89PNG fake"

    def test_octet_stream_falls_back_to_field_name(self, client, member_headers, tasks):
        resp = client.post(
            "/api/rewards/claim",
            data={
                "task_id": "google-review",
                "proof_type": "audio",
                "proofAudio": (io.BytesIO(b"ID3"), "note.mp3", "application/octet-stream"),
            },
            content_type="multipart/form-data",
            headers=member_headers,
        )

        assert resp.status_code == 201
        assert resp.json["data"]["proof_audio_url"].startswith("/uploads/")
        assert resp.json["data"]["proof_image_url"] is None

    def test_refused_claim_leaves_no_uploaded_file(self, app, client, member_headers, tasks, monkeypatch):
        assert _claim(client, member_headers, "follow-ig").status_code == 201
        monkeypatch.setattr(reward_service, "_has_claim", lambda user_id, task_id: False)
        before = set(os.listdir(app.config["UPLOAD_FOLDER"]))

        resp = client.post(
            "/api/rewards/claim",
            data={
                "task_id": "follow-ig",
                "proof_type": "image",
                "proofImage": (io.BytesIO(b"\x89PNG again"), "again.png", "image/png"),
            },
            content_type="multipart/form-data",
            headers=member_headers,
        )

        assert resp.status_code == 400
        assert set(os.listdir(app.config["UPLOAD_FOLDER"])) == before

    @pytest.mark.parametrize(
        "field,mimetype,expected",
        [
            ("proofImage", "image/jpeg", "image"),
            ("proofImage", "video/mp4", "video"),
            ("proofVideo", "application/octet-stream", "video"),
            ("attachment", "audio/ogg", "audio"),
            ("attachment", "application/pdf", None),
        ],
    )
    def test_classify_upload(self, field, mimetype, expected):
        assert classify_upload(field, mimetype) == expected


# =============================================================================
# REVIEW
# =============================================================================


class TestReview:

    def test_approval_credits_ledger(self, client, member, member_headers, admin_headers, notifier, tasks):
        claim_id = _claim(client, member_headers, "follow-ig").json["data"]["id"]

        resp = _decide(client, admin_headers, claim_id, "approved", notes="Looks good")

        assert resp.status_code == 200
        assert resp.json["data"]["status"] == "approved"
        assert resp.json["data"]["approved_by"]["email"] == "admin@example.com"
        assert _balance(member.id) == 5

        adjustment = db.session.query(PointsAdjustment).one()
        assert adjustment.adjustment_type == "add"
        assert (adjustment.previous_balance, adjustment.new_balance) == (0, 5)
        assert adjustment.reward_claim_id == claim_id
        assert adjustment.reward_task_id == tasks["follow-ig"].id
        assert notifier.emails[-1]["to"] == "alice@example.com"

    def test_reapproval_only_updates_notes(self, client, member, member_headers, admin_headers, tasks):
        claim_id = _claim(client, member_headers, "follow-ig").json["data"]["id"]
        _decide(client, admin_headers, claim_id, "approved")

        resp = _decide(client, admin_headers, claim_id, "approved", notes="double checked")

        assert resp.status_code == 200
        assert resp.json["data"]["admin_notes"] == "double checked"
        assert _balance(member.id) == 5
        assert db.session.query(PointsAdjustment).count() == 1

    def test_approved_claim_cannot_be_rejected(self, client, member, member_headers, admin_headers, tasks):
        claim_id = _claim(client, member_headers, "follow-ig").json["data"]["id"]
        _decide(client, admin_headers, claim_id, "approved")

        resp = _decide(client, admin_headers, claim_id, "rejected")

        assert resp.status_code == 409
        db.session.expire_all()
        assert db.session.get(RewardClaim, claim_id).status == "approved"
        assert _balance(member.id) == 5

    def test_rejection_pays_nothing(self, client, member, member_headers, admin_headers, notifier, tasks):
        claim_id = _claim(client, member_headers, "follow-ig").json["data"]["id"]

        resp = _decide(client, admin_headers, claim_id, "rejected", notes="Blurry photo")

        assert resp.status_code == 200
        assert resp.json["data"]["status"] == "rejected"
        assert resp.json["data"]["rejected_at"] is not None
        assert _balance(member.id) == 0
        assert "Blurry photo" in notifier.emails[-1]["body"]

    def test_rejected_claim_can_be_approved_later(self, client, member, member_headers, admin_headers, tasks):
        claim_id = _claim(client, member_headers, "follow-ig").json["data"]["id"]
        _decide(client, admin_headers, claim_id, "rejected")

        assert _decide(client, admin_headers, claim_id, "approved").status_code == 200
        assert _balance(member.id) == 5

    def test_non_text_admin_notes(self, client, member, member_headers, admin_headers, tasks):
        claim_id = _claim(client, member_headers, "follow-ig").json["data"]["id"]

        resp = _decide(client, admin_headers, claim_id, "approved", notes=7)

        assert resp.status_code == 400
        assert db.session.get(RewardClaim, claim_id).status == "pending"
        assert _balance(member.id) == 0

    def test_invalid_decision(self, client, member_headers, admin_headers, tasks):
        claim_id = _claim(client, member_headers, "follow-ig").json["data"]["id"]
        assert _decide(client, admin_headers, claim_id, "pending").status_code == 400
        assert _decide(client, admin_headers, 999999, "approved").status_code == 404

    def test_members_cannot_review(self, client, member_headers, tasks):
        claim_id = _claim(client, member_headers, "follow-ig").json["data"]["id"]
        assert _decide(client, member_headers, claim_id, "approved").status_code == 403


class TestCompletionBonus:

    def test_bonus_granted_once_after_every_required_task(
        self, client, member, member_headers, admin_headers, tasks
    ):
        ig = _claim(client, member_headers, "follow-ig").json["data"]["id"]
        review = _claim(client, member_headers, "google-review").json["data"]["id"]
        friend = _claim(client, member_headers, "bring-friend").json["data"]["id"]

        _decide(client, admin_headers, ig, "approved")
        assert _balance(member.id) == 5

        _decide(client, admin_headers, review, "approved")
        assert _balance(member.id) == 5 + 3 + 15

        _decide(client, admin_headers, friend, "approved")
        _decide(client, admin_headers, review, "approved")
        assert _balance(member.id) == 5 + 3 + 15 + 2

        bonuses = db.session.query(RewardClaim).filter_by(task_id=COMPLETION_BONUS_TASK_ID).all()
        assert len(bonuses) == 1
        assert bonuses[0].status == "approved"
        assert bonuses[0].amount == 15

    def test_optional_tasks_do_not_unlock_bonus(self, client, member, member_headers, admin_headers, tasks):
        friend = _claim(client, member_headers, "bring-friend").json["data"]["id"]
        ig = _claim(client, member_headers, "follow-ig").json["data"]["id"]

        _decide(client, admin_headers, friend, "approved")
        _decide(client, admin_headers, ig, "approved")

        assert _balance(member.id) == 7
        assert db.session.query(RewardClaim).filter_by(task_id=COMPLETION_BONUS_TASK_ID).count() == 0

    def test_history_includes_bonus_in_total_earned(self, client, member_headers, admin_headers, tasks):
        for task_id in ("follow-ig", "google-review"):
            claim_id = _claim(client, member_headers, task_id).json["data"]["id"]
            _decide(client, admin_headers, claim_id, "approved")

        resp = client.get("/api/rewards/history", headers=member_headers)

        assert resp.json["total_earned"] == 23
        assert {c["task_id"] for c in resp.json["data"]} == {"follow-ig", "google-review", COMPLETION_BONUS_TASK_ID}


# =============================================================================
# ADMIN LISTINGS AND TASK CATALOG
# =============================================================================


class TestAdminViews:

    def test_pending_requests_and_stats(self, client, member_headers, other_member_headers, admin_headers, tasks):
        first = _claim(client, member_headers, "follow-ig").json["data"]["id"]
        _claim(client, other_member_headers, "follow-ig")
        _claim(client, member_headers, "google-review")
        _decide(client, admin_headers, first, "approved")

        pending = client.get("/api/rewards/admin/requests", headers=admin_headers)
        assert pending.json["pagination"]["totalItems"] == 2

        everything = client.get("/api/rewards/admin/requests?status=all", headers=admin_headers)
        assert everything.json["pagination"]["totalItems"] == 3

        stats = client.get("/api/rewards/admin/stats", headers=admin_headers).json["data"]
        assert stats["overview"]["total_requests"] == 3
        assert stats["overview"]["approved_requests"] == 1
        assert stats["overview"]["total_amount_paid"] == 5
        assert stats["by_task"] == [{"task_id": "follow-ig", "count": 1, "total_amount": 5}]

    def test_member_pending_requests(self, client, member_headers, tasks):
        _claim(client, member_headers, "follow-ig")
        resp = client.get("/api/rewards/requests", headers=member_headers)
        assert [c["task_id"] for c in resp.json["data"]] == ["follow-ig"]


class TestTaskCatalog:

    def test_create_update_toggle_delete(self, client, admin_headers):
        created = client.post(
            "/api/rewards/admin/tasks",
            json={"taskId": "visit-store", "title": "Visit the Store", "reward": 4, "order": 2},
            headers=admin_headers,
        )
        assert created.status_code == 201
        task_pk = created.json["data"]["id"]

        updated = client.put(
            f"/api/rewards/admin/tasks/{task_pk}", json={"reward": 6}, headers=admin_headers
        )
        assert updated.json["data"]["reward"] == 6

        toggled = client.patch(f"/api/rewards/admin/tasks/{task_pk}/toggle-visibility", headers=admin_headers)
        assert toggled.json["data"]["is_visible"] is False

        assert client.delete(f"/api/rewards/admin/tasks/{task_pk}", headers=admin_headers).status_code == 200
        assert db.session.query(RewardTask).count() == 0

    def test_duplicate_and_reserved_task_ids(self, client, admin_headers, tasks):
        duplicate = client.post(
            "/api/rewards/admin/tasks",
            json={"task_id": "follow-ig", "title": "Again", "reward": 1},
            headers=admin_headers,
        )
        assert duplicate.status_code == 409

        reserved = client.post(
            "/api/rewards/admin/tasks",
            json={"task_id": COMPLETION_BONUS_TASK_ID, "title": "Bonus", "reward": 1},
            headers=admin_headers,
        )
        assert reserved.status_code == 400

    def test_deleting_task_keeps_claim_and_ledger_rows(self, client, member, member_headers, admin_headers, tasks):
        claim_id = _claim(client, member_headers, "follow-ig").json["data"]["id"]
        _decide(client, admin_headers, claim_id, "approved")

        resp = client.delete(f"/api/rewards/admin/tasks/{tasks['follow-ig'].id}", headers=admin_headers)

        assert resp.status_code == 200
        db.session.expire_all()
        assert db.session.get(RewardClaim, claim_id).task_title == "Follow Us On IG"
        assert db.session.query(PointsAdjustment).one().reward_task_id is None
