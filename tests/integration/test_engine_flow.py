"""End-to-end flows through the job engine: scheduling, retries and limits."""

import asyncio
from datetime import timedelta

import pytest

from background_jobs.models import JobStatus, utcnow


@pytest.mark.asyncio
async def test_concurrency_bound_never_exceeded(make_engine, registry, wait_until):
    """Test no more than N jobs are processing at any instant."""
    engine = make_engine(concurrency=3)
    active = 0
    max_active = 0
    observed_processing = []

    @registry.handler("send_notification")
    async def send_notification(payload, job):
        nonlocal active, max_active
        active += 1
        max_active = max(max_active, active)
        observed_processing.append(engine.get_stats()["processing_count"])
        await asyncio.sleep(0.02)
        active -= 1

    for i in range(12):
        engine.submit("send_notification", {"n": i})

    await engine.start()
    try:
        await wait_until(lambda: engine.get_stats()["processed"] == 12, timeout=5)
    finally:
        await engine.stop()

    assert max_active == 3
    assert max(observed_processing) <= 3


@pytest.mark.asyncio
async def test_retry_budget_decreases_until_failed(make_engine, registry, wait_until):
    """Test retries_left strictly decreases and the job fails once it hits zero."""
    seen_retries_left = []

    @registry.handler("send_webhook")
    async def send_webhook(payload, job):
        seen_retries_left.append(job.retries_left)
        raise ConnectionError("endpoint unreachable")

    engine = make_engine()
    job_id = engine.submit("send_webhook", {"url": "https://x"}, retries=3)

    await engine.start()
    try:
        await wait_until(lambda: engine.get_stats()["failed"] == 1)
        await asyncio.sleep(0.1)
    finally:
        await engine.stop()

    assert seen_retries_left == [3, 2, 1]
    job = engine.dead_letters.get(job_id)
    assert job.status == JobStatus.FAILED
    assert job.retries_left == 0
    assert job.attempts == 3
    assert job.failed_at is not None
    assert job.last_error == "endpoint unreachable"
    assert engine.get_stats()["processed"] == 0
    assert engine.get_stats()["pending"] == 0


@pytest.mark.asyncio
async def test_backoff_grows_exponentially(make_engine, registry, wait_until):
    """Test run_at after the k-th failure is at least now + base * 2^(k-1)."""
    base = 0.02
    failed_at = {}
    next_run_at = {}

    @registry.handler("send_email")
    async def send_email(payload, job):
        if job.attempts > 1:
            next_run_at[job.attempts - 1] = job.run_at
        if job.attempts <= 3:
            failed_at[job.attempts] = utcnow()
            raise RuntimeError(f"attempt {job.attempts} failed")

    engine = make_engine(backoff_policy={"type": "exponential", "base_seconds": base})
    engine.submit("send_email", {}, retries=4)

    await engine.start()
    try:
        await wait_until(lambda: engine.get_stats()["processed"] == 1)
    finally:
        await engine.stop()

    for k in (1, 2, 3):
        assert next_run_at[k] >= failed_at[k] + timedelta(seconds=base * 2 ** (k - 1))


@pytest.mark.asyncio
async def test_priority_preferred_with_one_free_slot(make_engine, registry, wait_until):
    """Test the priority 10 job is selected before the priority 1 job."""
    order = []

    @registry.handler("send_email")
    async def send_email(payload, job):
        order.append(job.priority)

    @registry.handler("update_stats")
    async def update_stats(payload, job):
        order.append(job.priority)

    engine = make_engine(concurrency=1)
    engine.submit("send_email", {}, priority=1)
    engine.submit("update_stats", {}, priority=10)
    engine.submit("send_email", {}, priority=5)

    await engine.start()
    try:
        await wait_until(lambda: engine.get_stats()["processed"] == 3)
    finally:
        await engine.stop()

    assert order == [10, 5, 1]


@pytest.mark.asyncio
async def test_scenario_webhook_succeeds_on_third_attempt(make_engine, registry, wait_until):
    """Test a webhook failing twice then succeeding completes after 3 calls."""
    invocations = []

    @registry.handler("SEND_WEBHOOK")
    async def send_webhook(payload, job):
        invocations.append(job.attempts)
        if len(invocations) < 3:
            raise ConnectionError("503 from endpoint")

    engine = make_engine()
    job_id = engine.submit("SEND_WEBHOOK", {"url": "https://hooks.example.com"}, retries=3)
    job = engine.get_job(job_id)

    await engine.start()
    try:
        await wait_until(lambda: engine.get_stats()["processed"] == 1)
    finally:
        await engine.stop()

    assert invocations == [1, 2, 3]
    assert job.status == JobStatus.COMPLETED
    assert job.retries_left == 1
    stats = engine.get_stats()
    assert stats["processed"] == 1
    assert stats["failed"] == 0
    assert stats["pending"] == 0


@pytest.mark.asyncio
async def test_scenario_two_slots_five_jobs(make_engine, registry, wait_until):
    """Test with limit 2 and five 100ms jobs, two process and three wait at 50ms."""

    @registry.handler("generate_report")
    async def generate_report(payload, job):
        await asyncio.sleep(0.1)

    engine = make_engine(concurrency=2)
    job_ids = [engine.submit("generate_report", {"n": i}) for i in range(5)]

    await engine.start()
    try:
        await asyncio.sleep(0.05)
        statuses = [engine.get_job(job_id).status for job_id in job_ids]
        stats = engine.get_stats()
    finally:
        await engine.stop()
    await wait_until(lambda: engine.get_stats()["processing_count"] == 0)

    assert statuses.count(JobStatus.PROCESSING) == 2
    assert statuses.count(JobStatus.PENDING) == 3
    assert stats["processing_count"] == 2
    assert stats["pending"] == 3
    assert stats["per_type"]["generate_report"] == {"pending": 3, "processing": 2}


@pytest.mark.asyncio
async def test_scenario_unknown_type_fails_without_attempt(make_engine, registry, wait_until):
    """Test a job without a handler fails immediately and is never retried."""
    engine = make_engine()
    job_id = engine.submit("UNKNOWN_TYPE", {}, tenant_tag="store-9")

    await engine.start()
    try:
        await wait_until(lambda: engine.get_stats()["failed"] == 1)
    finally:
        await engine.stop()

    jobs = engine.get_jobs_for_tenant("store-9")
    assert [job.id for job in jobs] == [job_id]
    job = jobs[0]
    assert job.status == JobStatus.FAILED
    assert job.attempts == 0
    assert job.retries_left == 3
    assert job.last_error == "No handler registered for job type UNKNOWN_TYPE"

    stats = engine.get_stats()
    assert stats["failed"] == 1
    assert stats["pending"] == 0
    assert stats["per_type"]["UNKNOWN_TYPE"] == {"pending": 0, "processing": 0}
    assert engine.get_jobs_for_tenant("store-9", include_failed=False) == []


@pytest.mark.asyncio
async def test_scenario_no_backpressure(make_engine, registry, wait_until):
    """Test pending grows without a cap when handlers never finish."""
    never = asyncio.Event()

    @registry.handler("sync_inventory")
    async def sync_inventory(payload, job):
        await never.wait()

    engine = make_engine(concurrency=5)
    await engine.start()
    try:
        for i in range(10_000):
            engine.submit("sync_inventory", {"n": i})

        await wait_until(lambda: engine.get_stats()["processing_count"] == 5)
        stats = engine.get_stats()
        assert stats["pending"] == 10_000 - 5
        assert stats["processed"] == 0

        for i in range(1_000):
            engine.submit("sync_inventory", {"n": i})
        assert engine.get_stats()["pending"] == 11_000 - 5
    finally:
        await engine.stop()
        for task in list(engine._tasks):
            task.cancel()
        await asyncio.gather(*engine._tasks, return_exceptions=True)


@pytest.mark.asyncio
async def test_handler_errors_do_not_stop_other_jobs(make_engine, registry, wait_until):
    """Test failing handlers leave the engine processing other work."""

    @registry.handler("process_coupon")
    async def process_coupon(payload, job):
        if payload["bad"]:
            raise KeyError("coupon")

    engine = make_engine()
    for bad in (True, False, True, False):
        engine.submit("process_coupon", {"bad": bad}, retries=0)

    await engine.start()
    try:
        await wait_until(
            lambda: engine.get_stats()["processed"] == 2 and engine.get_stats()["failed"] == 2
        )
    finally:
        await engine.stop()

    assert len(engine.dead_letters) == 2


@pytest.mark.asyncio
async def test_jobs_for_tenant_show_live_state(make_engine, registry, wait_until):
    """Test tenant introspection reflects processing jobs."""
    release = asyncio.Event()

    @registry.handler("send_whatsapp")
    async def send_whatsapp(payload, job):
        await release.wait()

    engine = make_engine()
    job_id = engine.submit("send_whatsapp", {"to": "+100"}, tenant_tag="store-1")

    await engine.start()
    try:
        await wait_until(
            lambda: engine.get_jobs_for_tenant("store-1")[0].status == JobStatus.PROCESSING
        )
        release.set()
        await wait_until(lambda: engine.get_stats()["processed"] == 1)
    finally:
        await engine.stop()

    assert engine.get_jobs_for_tenant("store-1") == []
    assert engine.get_stats()["per_type"]["send_whatsapp"] == {"pending": 0, "processing": 0}
    assert job_id not in engine.dead_letters
