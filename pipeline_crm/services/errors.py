"""
Pipeline CRM - Exceptions métier

Levées par les services, traduites en réponses HTTP par server.py.
"""


class PipelineError(Exception):
    """Base de toutes les erreurs métier"""
    status_code = 500

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class LeadValidationError(PipelineError):
    """Payload invalide: rejeté AVANT toute écriture, jamais réessayé"""
    status_code = 400


class NotFoundError(PipelineError):
    status_code = 404


class ReferentialError(PipelineError):
    """Suppression refusée: l'objet est encore référencé"""
    status_code = 409


class DistributionConflictError(PipelineError):
    """Round-robin: compare-and-set perdu après toutes les tentatives"""
    status_code = 409


class AuthorizationError(PipelineError):
    status_code = 403


class PersistenceError(PipelineError):
    """Échec du store (réseau, écriture). L'opération peut être relancée."""
    status_code = 503


class ProvisioningError(PipelineError):
    status_code = 500
