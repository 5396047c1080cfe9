"""makerchecker.integrations: outbound gateways.

All outbound HTTP calls go through a gateway in this package, never via
bare `requests` calls in services or blueprints.

Current gateways:
  orchestrator_gateway.OrchestratorGateway: workflow engine REST API
"""
