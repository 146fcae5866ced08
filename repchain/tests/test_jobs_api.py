from datetime import datetime, timedelta, timezone

import pytest

from repchain.models import JobStatus


def _job_body(**overrides):
    body = {
        "title": "Build a landing page",
        "description": "Responsive landing page with a signup form.",
        "budget": 2.5,
        "deadline": (datetime.now(timezone.utc) + timedelta(days=7)).isoformat(),
    }
    body.update(overrides)
    return body


@pytest.fixture()
def parties(make_user):
    return make_user(), make_user()


def test_requires_authentication(client):
    assert client.get("/api/jobs").status_code == 401
    r = client.get("/api/jobs", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_full_flow_over_http(client, parties, auth_headers):
    owner, freelancer = parties
    h_owner, h_free = auth_headers(owner), auth_headers(freelancer)

    r = client.post("/api/jobs", json=_job_body(), headers=h_owner)
    assert r.status_code == 201, r.text
    job = r.json()
    assert job["status"] == "OPEN"
    assert job["budget"] == 2.5
    assert job["budget_lamports"] == 2_500_000_000
    assert job["client"]["id"] == owner.id
    pk = job["id"]

    r = client.post(f"/api/jobs/{pk}/apply", json={"proposal": "I have shipped many landing pages. " * 3},
                    headers=h_free)
    assert r.status_code == 200, r.text
    assert r.json()["job_id"] == job["job_id"]

    r = client.put(f"/api/jobs/{pk}/assign", json={"freelancer_id": freelancer.id}, headers=h_owner)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "IN_PROGRESS"
    assert r.json()["freelancer_id"] == freelancer.id

    r = client.post(f"/api/jobs/{pk}/submit", json={"submission_url": "https://x.com/a"}, headers=h_free)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "SUBMITTED"
    assert r.json()["submitted_at"] is not None

    r = client.put(f"/api/jobs/{pk}/review", json={"action": "approve", "rating": 5}, headers=h_owner)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "COMPLETED"
    assert r.json()["reviewed_at"] is not None


def test_create_validation_errors_are_400(client, parties, auth_headers):
    owner, _ = parties
    h = auth_headers(owner)

    r = client.post("/api/jobs", json=_job_body(budget=-1), headers=h)
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"

    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    r = client.post("/api/jobs", json=_job_body(deadline=past), headers=h)
    assert r.status_code == 400
    assert "Deadline" in r.json()["detail"]

    r = client.post("/api/jobs", json=_job_body(title="abc"), headers=h)
    assert r.status_code == 400


def test_error_kinds_map_to_status_codes(client, parties, make_user, make_job, auth_headers):
    owner, freelancer = parties
    stranger = make_user()
    job = make_job(owner)

    r = client.put(f"/api/jobs/{job.id}/assign", json={"freelancer_id": freelancer.id},
                   headers=auth_headers(stranger))
    assert r.status_code == 403
    assert r.json()["error"] == "forbidden"

    r = client.put(f"/api/jobs/{job.id}/assign", json={"freelancer_id": 424242}, headers=auth_headers(owner))
    assert r.status_code == 404

    r = client.put(f"/api/jobs/{job.id}/assign", json={"freelancer_id": freelancer.id}, headers=auth_headers(owner))
    assert r.status_code == 200
    r = client.put(f"/api/jobs/{job.id}/assign", json={"freelancer_id": freelancer.id}, headers=auth_headers(owner))
    assert r.status_code == 400
    assert r.json()["error"] == "precondition_failed"

    r = client.delete(f"/api/jobs/{job.id}/cancel", headers=auth_headers(owner))
    assert r.status_code == 400

    assert client.get("/api/jobs/424242", headers=auth_headers(owner)).status_code == 404


def test_submit_url_validation(client, parties, make_job, auth_headers):
    owner, freelancer = parties
    job = make_job(owner, JobStatus.IN_PROGRESS, freelancer_id=freelancer.id)
    r = client.post(f"/api/jobs/{job.id}/submit", json={"submission_url": "not a url at all"},
                    headers=auth_headers(freelancer))
    assert r.status_code == 400

    r = client.post(f"/api/jobs/{job.id}/submit", json={"submission_url": "https://x.com/" + "a" * 500},
                    headers=auth_headers(freelancer))
    assert r.status_code == 400

    r = client.post(f"/api/jobs/{job.id}/submit", json={"submission_url": "ipfs://bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"},
                    headers=auth_headers(freelancer))
    assert r.status_code == 200, r.text
    assert r.json()["submission_url"].startswith("ipfs://bafybei")


def test_reject_without_reason_is_400(client, parties, make_job, auth_headers):
    owner, freelancer = parties
    job = make_job(owner, JobStatus.SUBMITTED, freelancer_id=freelancer.id,
                   submission_url="https://x.com/a", submitted_at=datetime.now(timezone.utc))
    r = client.put(f"/api/jobs/{job.id}/review", json={"action": "reject"}, headers=auth_headers(owner))
    assert r.status_code == 400
    assert "reason" in r.json()["detail"].lower()

    r = client.put(f"/api/jobs/{job.id}/review", json={"action": "shrug"}, headers=auth_headers(owner))
    assert r.status_code == 400


def test_apply_rejects_short_proposal_and_own_job(client, parties, make_job, auth_headers):
    owner, freelancer = parties
    job = make_job(owner)
    r = client.post(f"/api/jobs/{job.id}/apply", json={"proposal": "too short"}, headers=auth_headers(freelancer))
    assert r.status_code == 400
    r = client.post(f"/api/jobs/{job.id}/apply", json={"proposal": "p" * 60}, headers=auth_headers(owner))
    assert r.status_code == 400


def test_list_filters(client, parties, make_user, make_job, auth_headers):
    owner, freelancer = parties
    other_owner = make_user()
    a = make_job(owner)
    b = make_job(owner, JobStatus.IN_PROGRESS, freelancer_id=freelancer.id)
    c = make_job(other_owner, JobStatus.IN_PROGRESS, freelancer_id=owner.id)
    h = auth_headers(owner)

    ids = lambda r: {j["id"] for j in r.json()}

    assert ids(client.get("/api/jobs", headers=h)) == {a.id, b.id, c.id}
    assert ids(client.get("/api/jobs", params={"status": "OPEN"}, headers=h)) == {a.id}
    assert ids(client.get("/api/jobs", params={"client_id": owner.id}, headers=h)) == {a.id, b.id}
    assert ids(client.get("/api/jobs", params={"freelancer_id": freelancer.id}, headers=h)) == {b.id}
    assert ids(client.get("/api/jobs", params={"status": "IN_PROGRESS", "client_id": owner.id}, headers=h)) == {b.id}
    assert client.get("/api/jobs", params={"status": "BOGUS"}, headers=h).status_code == 400

    assert ids(client.get("/api/jobs/mine", headers=h)) == {a.id, b.id, c.id}
    assert ids(client.get("/api/jobs/mine", params={"role": "client"}, headers=h)) == {a.id, b.id}
    assert ids(client.get("/api/jobs/mine", params={"role": "freelancer"}, headers=h)) == {c.id}


def test_list_newest_first(client, parties, make_job, auth_headers):
    owner, _ = parties
    now = datetime.now(timezone.utc)
    old = make_job(owner, created_at=now - timedelta(days=3))
    new = make_job(owner, created_at=now - timedelta(days=1))
    r = client.get("/api/jobs", headers=auth_headers(owner))
    assert [j["id"] for j in r.json()] == [new.id, old.id]


def test_approve_recomputes_freelancer_reputation(client, parties, make_job, auth_headers, db_session):
    owner, freelancer = parties
    job = make_job(owner, JobStatus.SUBMITTED, freelancer_id=freelancer.id,
                   submission_url="https://x.com/a", submitted_at=datetime.now(timezone.utc))
    r = client.put(f"/api/jobs/{job.id}/review", json={"action": "approve"}, headers=auth_headers(owner))
    assert r.status_code == 200
    db_session.refresh(freelancer)
    # completion 550, review 500, timeliness 1000, no github, no disputes
    assert freelancer.reputation_score == 413
