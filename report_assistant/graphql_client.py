"""
Minimal GraphQL transport over CredentialStore.authenticated_call.
"""

import logging
from typing import Optional

from .config import GRAPHQL_PATH
from .errors import GraphQLError, MalformedResponse, UpstreamHttpError
from .auth import CredentialStore, response_error_message

logger = logging.getLogger(__name__)


class GraphQLClient:
    """Posts queries to the backend's /api/graphql endpoint."""

    def __init__(self, credentials: CredentialStore, path: str = GRAPHQL_PATH):
        self.credentials = credentials
        self.path = path

    async def execute(self, query: str, variables: Optional[dict] = None, operation: str = "query") -> dict:
        """
        Run a query or mutation and return its `data` object.

        Raises:
            UpstreamHttpError: non-2xx HTTP answer
            GraphQLError: the answer carries an `errors` list
            MalformedResponse: the body is not a GraphQL envelope
        """
        payload = {'query': query, 'variables': variables or {}}
        logger.debug(f"GraphQL {operation} -> {self.path} variables={payload['variables']}")

        response = await self.credentials.authenticated_call('POST', self.path, json=payload)
        if response.is_error:
            raise UpstreamHttpError(response.status_code, response_error_message(response))

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponse(f"GraphQL {operation} returned non-JSON body: {e}") from e

        if not isinstance(body, dict):
            raise MalformedResponse(f"GraphQL {operation} returned {type(body).__name__}, expected object")

        errors = body.get('errors')
        if errors:
            messages = [
                str(err.get('message', err)) if isinstance(err, dict) else str(err)
                for err in errors
            ]
            raise GraphQLError(response.status_code, "; ".join(messages))

        data = body.get('data')
        if not isinstance(data, dict):
            raise MalformedResponse(f"GraphQL {operation} returned no data")
        return data
