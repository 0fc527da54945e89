"""
Client package for the Tenant Portal API.

The request gateway fronts every API call, enforcing:
- Authentication: bearer token from the token store
- Session recovery: single-flight refresh on 401, forced logout on revocation
- Rate limiting: local backoff gate armed by server 429s
- Correlation: X-Trace-Id / X-Action-Id on every request

Structure:
- app.main: PortalClient facade wiring everything together.
- app.gateway: Request pipeline stages and the gateway.
- app.session: Token store, refresh coordinator and session manager.
- app.ratelimit: Backoff gate.
- app.adapters: Auth and business resource clients.
"""
