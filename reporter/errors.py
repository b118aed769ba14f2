"""리포터 에러 분류 및 재시도 정책"""


class ReporterError(Exception):
    """컬렉터와의 연결 중 발생한 모든 실패의 기본 클래스"""


class DialError(ReporterError):
    """TCP 접속 실패"""


class HandshakeError(ReporterError):
    """hello / authenticate 교환 실패

    response가 None이면 응답 라인을 받지 못한 경우(EOF, 읽기 에러, timeout)이고,
    문자열이면 컬렉터가 ok가 아닌 응답을 보낸 경우다.
    """

    def __init__(self, stage: str, response: str | None, detail: str = "") -> None:
        self.stage = stage
        self.response = response
        if response is None:
            message = f"no response for {stage.upper()}"
            if detail:
                message += f"; error: {detail}"
        else:
            message = f"unsuccessful {stage.upper()}: {response}"
        super().__init__(message)


class WriteError(ReporterError):
    """소켓 쓰기 실패 (해당 tick의 남은 라인은 버린다)"""


def always_retry(error: ReporterError) -> bool:
    return True


def retry_unless_rejected(error: ReporterError) -> bool:
    """authenticate가 명시적으로 거부되면 재시도하지 않는다 (잘못된 token)"""
    if isinstance(error, HandshakeError):
        return not (error.stage == "authenticate" and error.response is not None)
    return True
