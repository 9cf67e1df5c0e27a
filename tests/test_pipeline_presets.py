"""
Tests for pipeline handler factories.
"""
import pytest

from formstate import (
    FieldConfig,
    FormConfig,
    FormController,
    StatusType,
    create_error_handler,
    create_pipeline,
    create_retry_handler,
)
from formstate.form_controller import StageContext


class HttpError(Exception):

    def __init__(self, status):
        super().__init__(f"HTTP {status}")
        self.status = status


class Flaky:
    """Submit handler failing a fixed number of times before succeeding."""

    def __init__(self, failures, error_factory=lambda: ConnectionError('reset')):
        self.failures = failures
        self.error_factory = error_factory
        self.attempts = 0

    async def __call__(self, context):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error_factory()
        return 'ok'


class TestRetryHandler:

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        handler = Flaky(failures=2)
        retrying = create_retry_handler(handler, max_retries=3, delay=0.001)

        assert await retrying(None) == 'ok'
        assert handler.attempts == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        handler = Flaky(failures=5)
        retrying = create_retry_handler(handler, max_retries=2, delay=0.001)

        with pytest.raises(ConnectionError):
            await retrying(None)
        assert handler.attempts == 3

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        handler = Flaky(failures=1, error_factory=lambda: HttpError(400))
        retrying = create_retry_handler(handler, delay=0.001)

        with pytest.raises(HttpError):
            await retrying(None)
        assert handler.attempts == 1

    @pytest.mark.asyncio
    async def test_server_errors_retried(self):
        handler = Flaky(failures=1, error_factory=lambda: HttpError(503))
        retrying = create_retry_handler(handler, delay=0.001)

        assert await retrying(None) == 'ok'

    @pytest.mark.asyncio
    async def test_custom_predicate(self):
        handler = Flaky(failures=1, error_factory=lambda: ValueError('transient'))
        retrying = create_retry_handler(handler, delay=0.001, should_retry=lambda e: isinstance(e, ValueError))

        assert await retrying(None) == 'ok'

    @pytest.mark.asyncio
    async def test_wraps_sync_handler(self):
        retrying = create_retry_handler(lambda ctx: 'sync', delay=0.001)
        assert await retrying(None) == 'sync'


class TestErrorHandler:

    def test_custom_log_receives_error_and_context(self, make_controller):
        seen = []
        handler = create_error_handler(log=lambda error, ctx: seen.append((error, ctx)))
        context = StageContext(make_controller(), {}, error=RuntimeError('x'))

        handler(context)

        assert seen == [(context.error, context)]

    def test_default_log(self, make_controller, caplog):
        handler = create_error_handler()
        handler(StageContext(make_controller(), {}, error=RuntimeError('offline')))

        assert 'Submit error: offline' in caplog.text

    def test_show_to_user_rewrites_status(self, make_controller):
        controller = make_controller()
        handler = create_error_handler(show_to_user=True)

        handler(StageContext(controller, {}, error=RuntimeError('Server unavailable')))

        assert controller.status.type is StatusType.ERROR
        assert controller.status.message == 'Server unavailable'


class TestCreatePipeline:

    def test_default_error_handler_installed(self):
        pipeline = create_pipeline(submit=lambda ctx: None)
        assert callable(pipeline.on_error)

    def test_explicit_error_handler_kept(self):
        on_error = lambda ctx: None  # noqa: E731
        assert create_pipeline(on_error=on_error).on_error is on_error

    def test_named_submit_not_wrapped(self, caplog):
        pipeline = create_pipeline(submit='api.save', retry={'max_retries': 1})

        assert pipeline.submit == 'api.save'
        assert 'Retry policy ignored' in caplog.text

    @pytest.mark.asyncio
    async def test_pipeline_drives_controller(self, widgets):
        handler = Flaky(failures=1)
        pipeline = create_pipeline(
            submit=handler,
            retry={'max_retries': 2, 'delay': 0.001},
            error_handler_options={'show_to_user': True},
        )
        controller = FormController(FormConfig(
            form_id="retry-form",
            fields=(FieldConfig(id="name", required=True),),
            pipeline=pipeline,
        ))
        controller.observe(widgets['name'].emit('change', value='Ann'))

        await controller.submit()

        assert handler.attempts == 2
        assert controller.status.type is StatusType.SUCCESS
        controller.close()
