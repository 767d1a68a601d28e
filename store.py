"""Client-side application state.

One :class:`AppState` is owned by the controller; everything the screens show
is read from it and every change goes through the controller.
"""

from registry import Registry
from utils import same_id

RESOURCES = ("golf_courses", "vehicles", "users", "parts", "jobs", "usage_logs", "history", "notifications")


class AppState:
    def __init__(self):
        self.golf_courses = []
        self.vehicles = []
        self.users = []
        self.parts = []
        self.jobs = []
        self.usage_logs = []
        self.history = []
        self.notifications = []

    def load(self, **collections):
        for name, items in collections.items():
            if name not in RESOURCES:
                raise KeyError(name)
            setattr(self, name, [dict(item) for item in items])

    def registry(self):
        return Registry(self.golf_courses, self.vehicles, self.users)

    @staticmethod
    def _find(items, item_id):
        for item in items:
            if same_id(item.get("id"), item_id):
                return item
        return None

    @staticmethod
    def _replace(items, item):
        for index, existing in enumerate(items):
            if same_id(existing.get("id"), item.get("id")):
                items[index] = dict(item)
                return
        items.insert(0, dict(item))

    def job(self, job_id):
        job = self._find(self.jobs, job_id)
        return dict(job) if job else None

    def part(self, part_id):
        part = self._find(self.parts, part_id)
        return dict(part) if part else None

    def vehicle(self, vehicle_id):
        vehicle = self._find(self.vehicles, vehicle_id)
        return dict(vehicle) if vehicle else None

    def put_job(self, job):
        self._replace(self.jobs, job)

    def put_part(self, part):
        self._replace(self.parts, part)

    def put_vehicle(self, vehicle):
        self._replace(self.vehicles, vehicle)

    def drop_vehicle(self, vehicle_id):
        self.vehicles = [v for v in self.vehicles if not same_id(v.get("id"), vehicle_id)]

    def put_notification(self, notification):
        self._replace(self.notifications, notification)

    def drop_notification(self, notification_id):
        self.notifications = [n for n in self.notifications if not same_id(n.get("id"), notification_id)]

    def unread_notifications(self):
        return [dict(n) for n in self.notifications if not n.get("is_read")]

    def append_usage_log(self, entry):
        self.usage_logs.insert(0, dict(entry))

    def append_history(self, entry):
        self.history.insert(0, dict(entry))

    def jobs_with_status(self, *statuses):
        return [dict(job) for job in self.jobs if job.get("status") in statuses]

    def jobs_for_user(self, user_id):
        return [
            dict(job) for job in self.jobs
            if same_id(job.get("user_id"), user_id) or same_id(job.get("assigned_to"), user_id)
        ]
