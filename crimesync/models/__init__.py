from crimesync.models.entities import (  # noqa: F401
    ANONYMOUS_AUTHOR,
    GROUP_NAME_MAX,
    POST_CONTENT_MAX,
    REPORT_DESCRIPTION_MAX,
    CrimeType,
    EntityFamily,
    Feedback,
    Group,
    Pagination,
    Post,
    Report,
    User,
    utcnow,
)
