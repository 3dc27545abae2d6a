from dataclasses import dataclass

from panel_bridge.core.services.database.db_session import DbSessionService
from panel_bridge.core.services.identity.reconciler import IdentityReconciler
from panel_bridge.core.services.jwt.jwt_gen import RequestTokenGenerator
from panel_bridge.core.services.jwt.jwt_verify import TokenValidator
from panel_bridge.core.services.lookup.client import HttpLookupClient, LookupClient
from panel_bridge.core.storage.identity_store import IdentityStore, SqlIdentityStore
from panel_bridge.core.storage.nonce_store import NonceStore, SqlNonceStore
from panel_bridge.runtime.config.config_data import ConfigData


@dataclass
class ApplicationDependencies:
    config: ConfigData
    database_service: DbSessionService
    nonce_store: NonceStore
    identity_store: IdentityStore
    token_validator: TokenValidator
    token_generator: RequestTokenGenerator
    lookup_client: LookupClient
    reconciler: IdentityReconciler


def build_dependencies(
    config: ConfigData,
    database_service: DbSessionService | None = None,
    lookup_client: LookupClient | None = None,
) -> ApplicationDependencies:
    """Wire the SQL-backed services for one process.

    Raises:
        ConfigurationError: if the partner integration id or shared secret is missing
    """
    database_service = database_service or DbSessionService(config.database)
    nonce_store = SqlNonceStore(database_service, config.security.nonce_window_seconds)
    identity_store = SqlIdentityStore(database_service)
    token_generator = RequestTokenGenerator(config, nonce_store)
    lookup_client = lookup_client or HttpLookupClient(config, token_generator)

    return ApplicationDependencies(
        config=config,
        database_service=database_service,
        nonce_store=nonce_store,
        identity_store=identity_store,
        token_validator=TokenValidator(config, nonce_store),
        token_generator=token_generator,
        lookup_client=lookup_client,
        reconciler=IdentityReconciler(identity_store, lookup_client, config),
    )
