"""
Pydantic schemas for the License Eligibility Engine
"""
