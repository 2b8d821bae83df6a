from marshmallow import Schema, fields, validate, ValidationError, EXCLUDE

from core.models import SEVERITIES

MAX_BATCH_IPS = 100


def validate_ip_text(value):
    if not value or not value.strip() or len(value) > 45:
        raise ValidationError("Not a valid IP address.")


class IdsAlertSchema(Schema):
    """Wire shape of an IdsAlert (JSON export and API responses)."""
    id = fields.String(required=True)
    timestamp = fields.String(required=True)
    severity = fields.String(required=True, validate=validate.OneOf(SEVERITIES))
    category = fields.String()
    signature = fields.String()
    src_ip = fields.String(data_key="srcIp")
    src_port = fields.Integer(data_key="srcPort")
    dst_ip = fields.String(data_key="dstIp")
    dst_port = fields.Integer(data_key="dstPort")
    action = fields.String()
    proto = fields.String()
    app_proto = fields.String(data_key="appProto")
    interface = fields.String()
    country = fields.String(allow_none=True)
    city = fields.String(allow_none=True)
    lat = fields.Float(allow_none=True)
    lng = fields.Float(allow_none=True)
    isp = fields.String(allow_none=True)


class GeoBatchRequestSchema(Schema):
    ips = fields.List(
        fields.String(validate=validate_ip_text),
        required=True,
        validate=validate.Length(min=1, max=MAX_BATCH_IPS),
    )

    class Meta:
        unknown = EXCLUDE


class AlertQuerySchema(Schema):
    """Query-string parameters of the IDS alert table view."""
    q = fields.String(load_default="")
    severity = fields.String(load_default="all", validate=validate.OneOf(("all",) + SEVERITIES))
    sort = fields.String(
        load_default="timestamp",
        validate=validate.OneOf(("timestamp", "severity", "category", "srcIp", "dstIp", "dstPort")),
    )
    dir = fields.String(load_default="desc", validate=validate.OneOf(("asc", "desc")))
    geo = fields.Boolean(load_default=False)

    class Meta:
        unknown = EXCLUDE
