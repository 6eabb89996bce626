from .crud_application import application, applications_lookup, submission_sink
from .crud_person import person
from .crud_fee_structure import fee_structure
