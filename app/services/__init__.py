"""
Services for the License Eligibility Engine
"""
