# app/core/errors.py
"""Erros de domínio do catálogo de vídeos.

Cada classe carrega o status HTTP correspondente; o handler registrado em
``app.main`` converte qualquer ``VideoServiceError`` no envelope de erro
``{status, message}``.
"""


class VideoServiceError(Exception):
    status_code = 500
    default_message = "Erro interno no serviço de vídeos"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(VideoServiceError):
    status_code = 400
    default_message = "Entrada inválida"


class MissingField(InvalidInput):
    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"Campo obrigatório ausente: {field}")


class UnsupportedMedia(InvalidInput):
    status_code = 415
    default_message = "Tipo de arquivo não suportado"


class MediaTooLarge(InvalidInput):
    status_code = 413
    default_message = "Arquivo excede o limite permitido"


class NotFound(VideoServiceError):
    status_code = 404
    default_message = "Vídeo não encontrado"


class UploadFailed(VideoServiceError):
    default_message = "Falha ao enviar mídia para o storage"


class PersistenceFailed(VideoServiceError):
    default_message = "Falha ao salvar o vídeo no catálogo"


class CatalogUnavailable(VideoServiceError):
    default_message = "Catálogo indisponível, tente novamente mais tarde"
