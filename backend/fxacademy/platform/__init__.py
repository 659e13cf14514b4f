"""
Platform-level modules for request handling and access control.

- errors: Consistent error envelope handling
- request_context: Request-scoped identity and profile context
- guards: Route/API guard decisions (ALLOW / REDIRECT / DENY)
- rbac: Endpoint decorators that render guard decisions
"""
