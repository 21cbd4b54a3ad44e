import asyncio

import pytest

from credifin.domain.leads import policy, service
from credifin.domain.leads.schemas import CallbackRequest, LeadSubmission
from credifin.domain.otp import signing
from credifin.infra.rate_limit import RateLimited

NOW = 1_760_000_000_000
PHONE = "9876543210"
IP = "203.0.113.7"


def _submission(phone=PHONE, verified_at=NOW - 60_000, **overrides):
    fields = {
        "name": "Ravi Kumar",
        "phone": phone,
        "pincode": "110001",
        "loan_type": "personal-loan",
        "otp_signature": signing.sign_verification(phone, verified_at),
        "otp_timestamp": verified_at,
    }
    fields.update(overrides)
    return LeadSubmission(**fields)


@pytest.mark.asyncio
async def test_verified_lead_is_stored(lead_store):
    accepted = await service.accept_lead(
        _submission(utm_source="google", gclid="abc", lead_score=82, lead_tier="hot"),
        ip=IP,
        user_agent="Mozilla/5.0",
        now=NOW,
    )
    assert accepted.reference_number.startswith("CRED")
    assert len(accepted.reference_number) == 12
    assert accepted.reference_number[4:] == accepted.lead_id.replace("-", "")[-8:].upper()

    [row] = lead_store.rows
    assert row["id"] == accepted.lead_id
    assert row["verified"] is True
    assert row["utm_source"] == "google"
    assert row["lead_tier"] == "hot"
    assert row["ip_address"] == IP
    assert row["user_agent"] == "Mozilla/5.0"


@pytest.mark.asyncio
async def test_user_agent_is_truncated(lead_store):
    await service.accept_lead(_submission(), ip=IP, user_agent="x" * 900, now=NOW)
    assert len(lead_store.rows[0]["user_agent"]) == policy.USER_AGENT_MAX_LEN


@pytest.mark.asyncio
async def test_forged_token_is_rejected(lead_store):
    with pytest.raises(policy.VerificationRequired):
        await service.accept_lead(_submission(otp_signature="ab" * 32), ip=IP, now=NOW)
    assert lead_store.rows == []


@pytest.mark.asyncio
async def test_token_for_another_phone_is_rejected():
    other = signing.sign_verification("9876543211", NOW - 60_000)
    with pytest.raises(policy.VerificationRequired):
        await service.accept_lead(_submission(otp_signature=other), ip=IP, now=NOW)


@pytest.mark.asyncio
async def test_old_token_is_expired():
    with pytest.raises(policy.VerificationExpired):
        await service.accept_lead(_submission(verified_at=NOW - 31 * 60_000), ip=IP, now=NOW)


@pytest.mark.asyncio
async def test_repeat_submission_returns_existing_lead(lead_store):
    first = await service.accept_lead(_submission(), ip=IP, now=NOW)
    with pytest.raises(policy.DuplicateLead) as excinfo:
        await service.accept_lead(_submission(), ip=IP, now=NOW + 5_000)
    assert excinfo.value.lead_id == first.lead_id
    assert len(lead_store.rows) == 1


@pytest.mark.asyncio
async def test_product_slug_takes_precedence_for_duplicates(lead_store):
    first = await service.accept_lead(
        _submission(product_slug="e-rickshaw-loan", loan_type="business-loan"), ip=IP, now=NOW
    )
    fresh = NOW + 1_000
    with pytest.raises(policy.DuplicateLead) as excinfo:
        await service.accept_lead(
            _submission(verified_at=fresh, product_slug="e-rickshaw-loan", loan_type="personal-loan"),
            ip=IP,
            now=fresh,
        )
    assert excinfo.value.lead_id == first.lead_id


@pytest.mark.asyncio
async def test_same_phone_other_product_is_a_new_lead(lead_store):
    await service.accept_lead(_submission(), ip=IP, now=NOW)
    fresh = NOW + 1_000
    await service.accept_lead(_submission(verified_at=fresh, loan_type="home-loan"), ip=IP, now=fresh)
    assert len(lead_store.rows) == 2


@pytest.mark.asyncio
async def test_duplicate_window_is_one_hour(lead_store):
    await service.accept_lead(_submission(), ip=IP, now=NOW)
    later = NOW + 61 * 60_000
    await service.accept_lead(_submission(verified_at=later - 1_000), ip=IP, now=later)
    assert len(lead_store.rows) == 2


@pytest.mark.asyncio
async def test_token_cannot_be_spent_twice():
    await service.accept_lead(_submission(), ip=IP, now=NOW)
    with pytest.raises(policy.VerificationAlreadyUsed):
        await service.accept_lead(_submission(loan_type="home-loan"), ip=IP, now=NOW + 1_000)


@pytest.mark.asyncio
async def test_store_failure_releases_token(lead_store):
    lead_store.fail_inserts = True
    with pytest.raises(policy.LeadStoreUnavailable):
        await service.accept_lead(_submission(), ip=IP, now=NOW)
    lead_store.fail_inserts = False
    accepted = await service.accept_lead(_submission(), ip=IP, now=NOW + 1_000)
    assert lead_store.rows[0]["id"] == accepted.lead_id


@pytest.mark.asyncio
async def test_submissions_per_ip_are_limited():
    phones = [f"98765432{i:02d}" for i in range(6)]
    for phone in phones[:5]:
        await service.accept_lead(_submission(phone=phone), ip=IP, now=NOW)
    with pytest.raises(RateLimited) as excinfo:
        await service.accept_lead(_submission(phone=phones[5]), ip=IP, now=NOW)
    assert excinfo.value.message == "Too many submissions. Please try again later."
    assert excinfo.value.policy == "lead-submit-by-ip"


@pytest.mark.asyncio
async def test_redis_outage_does_not_block_leads(redis_down, lead_store):
    await service.accept_lead(_submission(), ip=IP, now=NOW)
    assert len(lead_store.rows) == 1


@pytest.mark.asyncio
async def test_callback_is_recorded_once_per_day(lead_store):
    request = CallbackRequest(phone=PHONE, product_slug="home-loan", city="Pune")
    lead_id = await service.request_callback(request, ip=IP, now=NOW)
    assert lead_id is not None
    row = lead_store.rows[0]
    assert row["verified"] is False
    assert row["name"] == policy.CALLBACK_NAME
    assert row["pincode"] == policy.CALLBACK_PINCODE
    assert row["loan_type"] == "home-loan"
    assert row["utm_source"] == policy.CALLBACK_SOURCE
    assert row["lead_tier"] == policy.CALLBACK_TIER

    assert await service.request_callback(request, ip=IP, now=NOW + 23 * 3_600_000) is None
    assert len(lead_store.rows) == 1
    assert await service.request_callback(request, ip=IP, now=NOW + 25 * 3_600_000) is not None


@pytest.mark.asyncio
async def test_callback_is_suppressed_after_verified_lead(lead_store):
    await service.accept_lead(_submission(), ip=IP, now=NOW)
    assert await service.request_callback(CallbackRequest(phone=PHONE), ip=IP, now=NOW + 1_000) is None


@pytest.mark.asyncio
async def test_callback_without_product_uses_general_enquiry(lead_store):
    await service.request_callback(CallbackRequest(phone=PHONE, source="footer"), ip=IP, now=NOW)
    assert lead_store.rows[0]["loan_type"] == policy.CALLBACK_LOAN_TYPE
    assert lead_store.rows[0]["utm_source"] == "footer"


@pytest.mark.asyncio
async def test_concurrent_double_submit_yields_one_lead(lead_store):
    results = await asyncio.gather(
        service.accept_lead(_submission(), ip=IP, now=NOW),
        service.accept_lead(_submission(), ip=IP, now=NOW),
        return_exceptions=True,
    )
    accepted = [r for r in results if isinstance(r, service.AcceptedLead)]
    duplicates = [r for r in results if isinstance(r, policy.DuplicateLead)]
    assert len(accepted) == 1
    assert len(duplicates) == 1
    assert duplicates[0].lead_id == accepted[0].lead_id
    assert len(lead_store.rows) == 1


@pytest.mark.asyncio
async def test_in_flight_claim_for_same_product_is_a_duplicate(fake_redis, lead_store):
    submission = _submission()
    await fake_redis.set(service._redeemed_key(submission.otp_signature), "lead-in-flight:personal-loan")
    with pytest.raises(policy.DuplicateLead) as excinfo:
        await service.accept_lead(submission, ip=IP, now=NOW)
    assert excinfo.value.lead_id == "lead-in-flight"
    assert lead_store.rows == []


@pytest.mark.asyncio
async def test_claim_for_other_product_is_a_reuse(fake_redis):
    submission = _submission()
    await fake_redis.set(service._redeemed_key(submission.otp_signature), "lead-in-flight:home-loan")
    with pytest.raises(policy.VerificationAlreadyUsed):
        await service.accept_lead(submission, ip=IP, now=NOW)
