"""
Core package for the Report Assistant.

Collects DingTalk/Feishu work reports through the backend, normalises them
into one canonical model and synthesises new reports with an AI model.

Modules:
- config: Settings and constants
- errors: Typed failures
- models: Canonical data model
- storage: Key/value persistence
- auth: Session lifecycle and authenticated calls
- graphql_client: GraphQL transport
- providers: Per-provider adapters
- catalog: Provider routing
- completion: Streaming chat-completion client
- prompts: AI prompts
- synthesizer: Report synthesis
"""

from .config import (
    API_BASE_URL,
    SUPPORTED_PROVIDERS,
    STATE_FILE,
    HTTP_TIMEOUT,
    validate_config,
)

from .errors import (
    ReportAssistantError,
    AuthenticationRequired,
    InvalidState,
    UpstreamHttpError,
    GraphQLError,
    NotFound,
    CapabilityUnsupported,
    MalformedResponse,
    PreconditionFailed,
    CompletionCancelled,
)

from .models import (
    User,
    Session,
    FieldType,
    FieldOption,
    CanonicalField,
    CanonicalTemplate,
    ReportField,
    CanonicalReport,
    ReportFilter,
    ReportSubmission,
    SubmissionResult,
)

from .storage import (
    MemoryStore,
    JsonFileStore,
    load_theme,
    save_theme,
)

from .auth import (
    CredentialStore,
    decode_token_expiry,
)

from .graphql_client import GraphQLClient

from .providers import (
    ADAPTERS,
    ProviderAdapter,
    register_adapter,
    DingTalkAdapter,
    FeishuAdapter,
)

from .catalog import ReportCatalog

from .completion import (
    PROVIDERS,
    CompletionProvider,
    CompletionSettings,
    CancellationToken,
    StreamAccumulator,
    StreamingCompletionClient,
    register_provider,
)

from .synthesizer import ReportSynthesizer

__all__ = [
    # Config
    'API_BASE_URL',
    'SUPPORTED_PROVIDERS',
    'STATE_FILE',
    'HTTP_TIMEOUT',
    'validate_config',
    # Errors
    'ReportAssistantError',
    'AuthenticationRequired',
    'InvalidState',
    'UpstreamHttpError',
    'GraphQLError',
    'NotFound',
    'CapabilityUnsupported',
    'MalformedResponse',
    'PreconditionFailed',
    'CompletionCancelled',
    # Models
    'User',
    'Session',
    'FieldType',
    'FieldOption',
    'CanonicalField',
    'CanonicalTemplate',
    'ReportField',
    'CanonicalReport',
    'ReportFilter',
    'ReportSubmission',
    'SubmissionResult',
    # Storage
    'MemoryStore',
    'JsonFileStore',
    'load_theme',
    'save_theme',
    # Auth
    'CredentialStore',
    'decode_token_expiry',
    'GraphQLClient',
    # Providers
    'ADAPTERS',
    'ProviderAdapter',
    'register_adapter',
    'DingTalkAdapter',
    'FeishuAdapter',
    'ReportCatalog',
    # Completion
    'PROVIDERS',
    'CompletionProvider',
    'CompletionSettings',
    'CancellationToken',
    'StreamAccumulator',
    'StreamingCompletionClient',
    'register_provider',
    'ReportSynthesizer',
]
