# school_notify/services/triggers.py
from datetime import date, datetime
from typing import Iterable, List, Protocol

from school_notify.models.notification import NotificationType
from school_notify.models.queue_message import QueueMessage


class NotificationSender(Protocol):
    """ServiceBusNotificationSender (cola) o LocalNotificationSender (en proceso)."""

    async def send_many(self, messages: List[QueueMessage]) -> int:
        ...


def _id_date(value) -> str:
    # formato de fecha corto d/m/aaaa
    if isinstance(value, str):
        # fromisoformat no acepta "Z" antes de Python 3.11
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        value = datetime.fromisoformat(value)
    if isinstance(value, (date, datetime)):
        return f"{value.day}/{value.month}/{value.year}"
    return str(value)


class NotificationTriggers:
    """
    Notificaciones que generan las acciones de negocio del sistema escolar.
    Las entidades llegan como dicts (filas de la base):
      student: {"user_id", "parent_id", "full_name"}
      subject: {"name"}
    `sender` recibe todos los QueueMessage de una acción juntos.
    """

    def __init__(self, sender: NotificationSender):
        self._sender = sender

    async def _emit(self, messages: Iterable[QueueMessage]) -> List[QueueMessage]:
        messages = list(messages)
        if messages:
            await self._sender.send_many(messages)
        return messages

    @staticmethod
    def _msg(user_id, type: NotificationType, title: str, message: str,
             reference_id=None) -> QueueMessage:
        return QueueMessage(
            type=type.value,
            userId=user_id,
            title=title,
            message=message,
            referenceId=reference_id,
        )

    def _student_and_parent(self, student: dict, type: NotificationType, title: str,
                            parent_title: str, message: str, parent_message: str,
                            reference_id) -> List[QueueMessage]:
        messages = [self._msg(student["user_id"], type, title, message, reference_id)]
        if student.get("parent_id"):
            messages.append(
                self._msg(student["parent_id"], type, parent_title, parent_message, reference_id)
            )
        return messages

    async def on_grade_input(self, grade: dict, student: dict, subject: dict):
        return await self._emit(self._student_and_parent(
            student,
            NotificationType.GRADE_INPUT,
            title="Nilai Baru",
            parent_title=f"Nilai {student.get('full_name', '')}".strip(),
            message=f"Nilai {subject['name']} Anda: {grade['score']}",
            parent_message=f"Nilai {subject['name']}: {grade['score']}",
            reference_id=grade["id"],
        ))

    async def on_attendance_input(self, attendance: dict, student: dict, subject: dict):
        return await self._emit(self._student_and_parent(
            student,
            NotificationType.ATTENDANCE_INPUT,
            title="Absensi Dicatat",
            parent_title=f"Absensi {student.get('full_name', '')}".strip(),
            message=f"Absensi {subject['name']}: {attendance['status']}",
            parent_message=f"Mata Pelajaran {subject['name']}: {attendance['status']}",
            reference_id=attendance["id"],
        ))

    async def on_assignment_created(self, assignment: dict, students: Iterable[dict]):
        text = f"Tugas: {assignment['title']} - Deadline: {_id_date(assignment['deadline'])}"
        messages = []
        for student in students:
            messages.extend(self._student_and_parent(
                student,
                NotificationType.ASSIGNMENT_CREATED,
                title="Tugas Baru",
                parent_title=f"Tugas Baru untuk {student.get('full_name', '')}".strip(),
                message=text,
                parent_message=text,
                reference_id=assignment["id"],
            ))
        return await self._emit(messages)

    async def on_assignment_submitted(self, submission: dict, assignment: dict, student: dict,
                                      teacher_user_id: str):
        return await self._emit([self._msg(
            teacher_user_id,
            NotificationType.ASSIGNMENT_SUBMITTED,
            "Tugas Dikumpulkan",
            f"{student.get('full_name', '')} mengumpulkan tugas: {assignment['title']}",
            submission["id"],
        )])

    async def on_assignment_graded(self, submission: dict, assignment: dict, student: dict):
        return await self._emit([self._msg(
            student["user_id"],
            NotificationType.ASSIGNMENT_GRADED,
            "Tugas Dinilai",
            f"Tugas {assignment['title']} dinilai: {submission.get('score', '-')}",
            assignment["id"],
        )])

    async def on_material_uploaded(self, material: dict, students: Iterable[dict]):
        return await self._emit([
            self._msg(
                student["user_id"],
                NotificationType.MATERIAL_UPLOADED,
                "Materi Baru",
                f"Materi baru: {material['title']}",
                material["id"],
            )
            for student in students
        ])

    async def on_user_created(self, user: dict):
        return await self._emit([self._msg(
            user["id"],
            NotificationType.USER_CREATED,
            "Akun Baru Dibuat",
            "Selamat datang di sistem sekolah. Akun Anda telah dibuat.",
            user["id"],
        )])

    async def on_password_reset(self, user_id: str):
        return await self._emit([self._msg(
            user_id,
            NotificationType.PASSWORD_RESET,
            "Password Direset",
            "Password akun Anda telah direset oleh administrator.",
            user_id,
        )])


def create_triggers(sender: NotificationSender = None) -> NotificationTriggers:
    """Por defecto encola en Service Bus (AZURE_SERVICE_BUS_CONNECTION_STRING)."""
    if sender is None:
        from school_notify.infra.servicebus_consumer import ServiceBusNotificationSender
        sender = ServiceBusNotificationSender()
    return NotificationTriggers(sender)
