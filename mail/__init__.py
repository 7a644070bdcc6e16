"""mail/ -- Outbound mail delivery for AuthGate.

Layer rule: mail/ imports only stdlib. It does NOT import from api/ or auth/.
auth/ calls into mail/ through MailSender.send() and catches DeliveryError.
"""
