from flask_wtf import FlaskForm
from wtforms import StringField, IntegerField, BooleanField, SelectField
from wtforms.validators import DataRequired, NumberRange, Email, Length, Optional, AnyOf

from poslicense.models import LICENSE_TYPES, LICENSE_STATUSES


class JsonForm(FlaskForm):
    """Base for API forms. Flask-WTF fills these from the JSON request body."""

    class Meta:
        csrf = False

    def error_messages(self):
        return {name: list(errors) for name, errors in self.errors.items()}


class JsonStringField(StringField):
    """StringField that rejects JSON numbers, booleans and objects. null counts as missing."""

    def process_formdata(self, valuelist):
        if valuelist and valuelist[0] is None:
            self.raw_data = []
            return
        if valuelist and not isinstance(valuelist[0], str):
            raise ValueError('Must be a string')
        super().process_formdata(valuelist)


class CreateLicenseForm(JsonForm):
    type = SelectField('License type', choices=[(t, t) for t in LICENSE_TYPES],
                       validators=[DataRequired(message='Type is required')])
    clientName = JsonStringField('Client name', validators=[
        DataRequired(message='Client name is required'), Length(max=200)])
    clientEmail = JsonStringField('Client email', validators=[
        DataRequired(message='Client email is required'), Email(), Length(max=120)])
    maxUsers = IntegerField('Max users', default=1, validators=[Optional(), NumberRange(min=1)])
    maxStores = IntegerField('Max stores', default=1, validators=[Optional(), NumberRange(min=1)])
    maxActivations = IntegerField('Max activations', default=3, validators=[Optional(), NumberRange(min=1)])
    notes = JsonStringField('Notes', validators=[Optional(), Length(max=2000)])


class ActivateLicenseForm(JsonForm):
    licenseKey = JsonStringField('License key', validators=[DataRequired(message='License key is required')])
    clientEmail = JsonStringField('Client email', validators=[
        DataRequired(message='Client email is required'), Email()])


class DeactivateForm(JsonForm):
    activationKey = JsonStringField('Activation key', validators=[
        DataRequired(message='Activation key is required')])
    licenseKey = JsonStringField('License key', validators=[DataRequired(message='License key is required')])
    reason = JsonStringField('Reason', default='Manual deactivation', validators=[Optional(), Length(max=255)])


class CheckActivationForm(JsonForm):
    activationKey = JsonStringField('Activation key', validators=[
        DataRequired(message='Activation key is required')])
    licenseKey = JsonStringField('License key', validators=[DataRequired(message='License key is required')])


class ValidateKeyForm(JsonForm):
    licenseKey = JsonStringField('License key', validators=[DataRequired(message='License key is required')])


class VerifyLicenseForm(JsonForm):
    licenseKey = JsonStringField('License key', validators=[DataRequired(message='License key is required')])
    includeDetails = BooleanField('Include details', default=False)
    generateReport = BooleanField('Generate report', default=False)


class GenerateFromTemplateForm(JsonForm):
    count = IntegerField('Count', default=1, validators=[Optional(), NumberRange(min=1)])
    clientName = JsonStringField('Client name', validators=[Optional(), Length(max=200)])
    clientEmail = JsonStringField('Client email', validators=[Optional(), Email()])


class StatusForm(JsonForm):
    status = JsonStringField('Status', validators=[
        DataRequired(message='Status is required'),
        AnyOf(LICENSE_STATUSES, message='Invalid status'),
    ])


class HardwareBindingForm(JsonForm):
    action = SelectField('Action', default='add',
                         choices=[('add', 'add'), ('remove', 'remove'), ('update-settings', 'update-settings')])
    hardwareId = JsonStringField('Hardware ID', validators=[Optional(), Length(max=255)])
    domain = JsonStringField('Domain', validators=[Optional(), Length(max=255)])
