from types import SimpleNamespace

import pytest

import llm_service
from errors import GenerationError
from token_budget import get_tracker


def test_generate_uses_task_budget_and_strips(fake_llm):
    text = llm_service.generate('Output only the question text', task='interview_question')
    assert text == 'Question number 1?'

    call = fake_llm.calls[-1]
    assert call['temperature'] == 0.8
    assert call['max_tokens'] == 500
    assert call['timeout'] == 60.0
    assert call['messages'] == [{'role': 'user', 'content': 'Output only the question text'}]


def test_generate_explicit_params_override_budget(fake_llm):
    llm_service.generate('hello', task='answer_feedback', temperature=0.1, max_tokens=42)
    call = fake_llm.calls[-1]
    assert call['temperature'] == 0.1
    assert call['max_tokens'] == 42
    assert call['timeout'] == 60.0


def test_generate_wraps_upstream_errors(fake_llm):
    fake_llm.fail_when('boom')
    with pytest.raises(GenerationError):
        llm_service.generate('boom', task='quick_feedback')

    summary = get_tracker().summary()
    assert summary['failed_calls'] == 1


def test_generate_rejects_empty_text(fake_llm):
    def empty(**kwargs):
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content='   '))])

    fake_llm.create = empty
    with pytest.raises(GenerationError):
        llm_service.generate('anything')


def test_generate_without_api_key_fails(monkeypatch):
    llm_service.set_client(None)
    monkeypatch.setattr(llm_service, 'OPENAI_API_KEY', '')
    assert not llm_service.is_enabled()
    with pytest.raises(GenerationError):
        llm_service.generate('anything')


def test_generate_stream_yields_chunks(fake_llm):
    chunks = list(llm_service.generate_stream('essay please', task='quick_feedback'))
    assert len(chunks) > 1
    assert ' '.join(chunks) == 'Overall impression: clear and sincere. Score 82/100.'
    assert fake_llm.calls[-1]['stream'] is True


def test_generate_stream_wraps_errors(fake_llm):
    fake_llm.fail_when('essay')
    with pytest.raises(GenerationError):
        list(llm_service.generate_stream('essay please'))


def test_tracker_records_successful_calls(fake_llm):
    llm_service.generate('one', task='quick_feedback')
    llm_service.generate('two', task='quick_feedback')
    summary = get_tracker().summary()
    assert summary['total_calls'] == 2
    assert summary['by_task']['quick_feedback']['calls'] == 2
