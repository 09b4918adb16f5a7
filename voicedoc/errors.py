"""Shared error types and user-facing messages."""

from __future__ import annotations

INVALID_TEXT_MESSAGE = "유효한 텍스트가 필요합니다(3자 이상)."
GENERATION_FAILED_MESSAGE = "문서 생성 실패"
UNKNOWN_ERROR_MESSAGE = "알 수 없는 오류"

MIC_PERMISSION_MESSAGE = "마이크 권한이 거부되었습니다. 브라우저 설정에서 권한을 허용해주세요."
RECORDING_START_MESSAGE = "녹음 시작 오류: "
RECORDING_BUSY_MESSAGE = "이미 녹음 중입니다."
NO_SPEECH_MESSAGE = "음성이 감지되지 않았습니다. 다시 시도해주세요."
NETWORK_MESSAGE = "네트워크 오류로 음성 인식이 중단되었습니다."
AUDIO_CAPTURE_MESSAGE = "마이크를 사용할 수 없습니다."
RECOGNITION_FAILED_MESSAGE = "음성 인식 오류: "

NO_TRANSCRIPT_MESSAGE = "음성 텍스트가 없습니다. 먼저 음성을 녹음해주세요."
GENERATE_ERROR_PREFIX = "문서 생성 중 오류가 발생했습니다: "
NO_DOCUMENT_MESSAGE = "전송할 문서가 없습니다."
NO_PHONE_MESSAGE = "전화번호를 입력해주세요."
SMS_UNAVAILABLE_MESSAGE = "이 기기에서는 SMS를 사용할 수 없습니다."
SMS_ERROR_PREFIX = "SMS 전송 중 오류가 발생했습니다: "


class VoiceDocError(Exception):
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or UNKNOWN_ERROR_MESSAGE


class ValidationError(VoiceDocError):
    """Malformed or insufficient input. Reported immediately, never retried."""

    status_code = 400


class UpstreamError(VoiceDocError):
    """Every candidate model failed; carries the last failure's message."""

    status_code = 500


class RecognitionError(VoiceDocError):
    pass


class RecordingInProgressError(RecognitionError):
    def __init__(self, message: str = RECORDING_BUSY_MESSAGE) -> None:
        super().__init__(message)


class MicrophonePermissionError(VoiceDocError):
    def __init__(self, message: str = MIC_PERMISSION_MESSAGE) -> None:
        super().__init__(message)


class DeliveryError(VoiceDocError):
    pass
