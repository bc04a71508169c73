from fastapi import HTTPException, status


# Коды ошибок сервисов -> HTTP-статус
ERROR_STATUS = {
  "FORBIDDEN": status.HTTP_403_FORBIDDEN,
  "USER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
  "MESSAGE_NOT_FOUND": status.HTTP_404_NOT_FOUND,
  "SELF_CONVERSATION": status.HTTP_400_BAD_REQUEST,
  "INVALID_EMOJI": status.HTTP_400_BAD_REQUEST,
}

# Уведомления для пользователя при ошибке записи
SEND_MESSAGE_FAILED = "שגיאה בשליחת ההודעה"
START_CONVERSATION_FAILED = "שגיאה ביצירת שיחה"
TOGGLE_REACTION_FAILED = "שגיאה בעדכון התגובה"


def http_error(error: ValueError) -> HTTPException:
  """ValueError("<CODE>") из сервиса -> HTTPException с тем же кодом в detail"""

  code = str(error)
  return HTTPException(
    status_code=ERROR_STATUS.get(code, status.HTTP_400_BAD_REQUEST),
    detail=code,
  )
