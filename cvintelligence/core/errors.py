# ============================================================================
# core/errors.py - Domain Errors
# ============================================================================
# Raised by services and converted to {"message": ...} responses by the
# exception handlers registered in main.py.

from typing import Optional


class CvIntelligenceError(Exception):
    status_code = 500
    message = "Erro interno do servidor"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def payload(self) -> dict:
        return {"message": self.message}


class DuplicateEmail(CvIntelligenceError):
    status_code = 400
    message = "Este e-mail já está cadastrado"


class InvalidCredentials(CvIntelligenceError):
    status_code = 401
    message = "E-mail ou senha inválidos"


class NotAuthenticated(CvIntelligenceError):
    status_code = 401
    message = "Não autenticado"


class Forbidden(CvIntelligenceError):
    status_code = 403
    message = "Acesso negado"


class RegistrationsDisabled(CvIntelligenceError):
    status_code = 403
    message = "Novos cadastros estão desativados no momento"


class NotFound(CvIntelligenceError):
    status_code = 404
    message = "Recurso não encontrado"


class UnsupportedFile(CvIntelligenceError):
    status_code = 400
    message = "Tipo de arquivo não suportado. Use PDF, DOC ou DOCX com até 5MB."


class InsufficientCredits(CvIntelligenceError):
    status_code = 402
    message = "Créditos insuficientes. Adquira mais créditos para continuar."

    def payload(self) -> dict:
        return {"message": self.message, "needsPayment": True}


class ScoringUnavailable(CvIntelligenceError):
    status_code = 500
    message = "Não foi possível analisar o currículo agora. Tente novamente em alguns minutos."


class PersistenceFailure(CvIntelligenceError):
    status_code = 500
    message = "Erro interno do servidor"


class PaymentsUnavailable(CvIntelligenceError):
    status_code = 503
    message = "Pagamentos estão desativados no momento"


class PaymentProviderError(CvIntelligenceError):
    status_code = 502
    message = "Erro ao criar intenção de pagamento"


class InvalidSignature(CvIntelligenceError):
    status_code = 400
    message = "Webhook Error: assinatura inválida"


class ConfigurationError(CvIntelligenceError):
    status_code = 500
    message = "Serviço de análise não configurado. Contate o administrador."
