"""gcg_platform.integrations: collaborator gateways.

Everything the platform needs from outside its own tables goes through a
gateway in this package, never via direct lookups in services:

  identity_gateway.IdentityGateway      user role, unit and e-mail lookup
  evidence_gateway.EvidenceGateway      evidence attachment counts
  dictionary_gateway.DictionaryGateway  master KKA → Factor template
  notification_sender.NotificationSender  outbound message delivery

Each module ships an in-memory implementation used by the test-suite and
local development; services receive gateways through their constructors.
"""
