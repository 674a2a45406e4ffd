"""Tests for the Bedrock embedding client with boto3 patched out."""

import io
import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, ReadTimeoutError

from kira_memory.utils.bedrock_embed import MAX_CACHED_CLIENTS, BedrockEmbed, normalize_timeout
from kira_memory.utils.config import BedrockEmbedConfig
from kira_memory.utils.errors import EmbeddingUnavailable, OperationTimeout, ValidationError


def make_config(model_id='amazon.titan-embed-text-v2:0', dimension=3):
    return BedrockEmbedConfig(region='us-east-1', model_id=model_id, dimension=dimension, retry_attempts=2, max_chars=10, timeout=5.0)


def body(payload):
    return {'body': io.BytesIO(json.dumps(payload).encode())}


@pytest.fixture
def session():
    with patch('kira_memory.utils.bedrock_embed.boto3') as boto3:
        yield boto3.Session.return_value


@pytest.fixture
def runtime(session):
    client = MagicMock()
    session.client.return_value = client
    return client


class TestBedrockEmbed:

    def test_titan_payload_and_truncation(self, runtime):
        runtime.invoke_model.return_value = body({'embedding': [0.1, 0.2, 0.3]})

        vector = BedrockEmbed(make_config()).embed_document('a' * 25)

        assert vector == [0.1, 0.2, 0.3]
        request = json.loads(runtime.invoke_model.call_args.kwargs['body'])
        assert request == {'inputText': 'a' * 10, 'dimensions': 3}

    def test_cohere_uses_query_input_type(self, runtime):
        runtime.invoke_model.return_value = body({'embeddings': [[0.0] * 1024]})

        BedrockEmbed(make_config('cohere.embed-english-v3', 1024)).embed_query('hello')

        request = json.loads(runtime.invoke_model.call_args.kwargs['body'])
        assert request == {'input_type': 'search_query', 'texts': ['hello']}

    def test_cohere_rejects_other_dimensions(self, runtime):
        with pytest.raises(ValidationError):
            BedrockEmbed(make_config('cohere.embed-english-v3', 512))

    def test_empty_text_rejected_without_call(self, runtime):
        with pytest.raises(ValidationError):
            BedrockEmbed(make_config()).embed_document('   ')
        runtime.invoke_model.assert_not_called()

    def test_client_error_is_unavailable(self, runtime):
        runtime.invoke_model.side_effect = ClientError({'Error': {'Code': 'ThrottlingException', 'Message': 'slow down'}}, 'InvokeModel')

        with pytest.raises(EmbeddingUnavailable):
            BedrockEmbed(make_config()).embed_document('hello')

    def test_read_timeout_is_operation_timeout(self, runtime):
        runtime.invoke_model.side_effect = ReadTimeoutError(endpoint_url='https://bedrock-runtime.us-east-1.amazonaws.com')

        with pytest.raises(OperationTimeout):
            BedrockEmbed(make_config()).embed_document('hello')

    def test_wrong_dimension_is_unavailable(self, runtime):
        runtime.invoke_model.return_value = body({'embedding': [0.1, 0.2]})

        with pytest.raises(EmbeddingUnavailable):
            BedrockEmbed(make_config()).embed_document('hello')

    def test_health_check_swallows_failure(self, runtime):
        runtime.invoke_model.side_effect = ClientError({'Error': {'Code': 'AccessDeniedException', 'Message': 'no'}}, 'InvokeModel')

        assert BedrockEmbed(make_config()).health_check() is False


class TestClientTimeouts:

    def test_default_client_uses_configured_timeout(self, session, runtime):
        BedrockEmbed(make_config())

        config = session.client.call_args.kwargs['config']
        assert config.connect_timeout == 5
        assert config.read_timeout == 5
        assert session.client.call_args.kwargs['service_name'] == 'bedrock-runtime'

    def test_caller_timeout_builds_matching_client(self, session, runtime):
        runtime.invoke_model.return_value = body({'embedding': [0.1, 0.2, 0.3]})
        embed = BedrockEmbed(make_config())

        embed.embed_query('hello', timeout=2)

        config = session.client.call_args.kwargs['config']
        assert (config.connect_timeout, config.read_timeout) == (2, 2)
        assert session.client.call_count == 2

    def test_clients_reused_per_whole_second(self, session, runtime):
        runtime.invoke_model.return_value = body({'embedding': [0.1, 0.2, 0.3]})
        embed = BedrockEmbed(make_config())

        for timeout in (1.2, 1.7, 2.0, 5.0):
            runtime.invoke_model.return_value = body({'embedding': [0.1, 0.2, 0.3]})
            embed.embed_document('hello', timeout=timeout)

        # 5s default plus one client for the 2-second bucket
        assert session.client.call_count == 2

    def test_cache_is_bounded(self, session, runtime):
        embed = BedrockEmbed(make_config())

        for timeout in range(1, MAX_CACHED_CLIENTS + 5):
            embed._client_for(timeout)

        assert len(embed._clients) == MAX_CACHED_CLIENTS


def test_normalize_timeout():
    assert normalize_timeout(0.2) == 1
    assert normalize_timeout(2.0) == 2
    assert normalize_timeout(2.1) == 3
