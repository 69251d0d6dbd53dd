"""
Prompt templates for the consultation analysis
"""

from typing import NamedTuple, Optional


BASE_CLINIC_PROMPT = (
    "You are a medical assistant AI. Analyze the following doctor-patient conversation and "
    "provide a diagnosis and prescription. Be professional and return in point form, only "
    "containing necessary information. The doctor and patient are not labeled so you would "
    "need to identify which is which. Sometimes, multiple languages may be present but you "
    "only need to return results in English, translate as necessary."
)

BASE_SUMMARY_PROMPT = (
    "You are a medical assistant AI. Analyze the following doctor-patient conversation and "
    "provide a concise summary. Be professional and summarize only critical information. The "
    "doctor and patient are not labeled so you would need to identify which is which. There "
    "may be multiple patients. Sometimes, multiple languages may be present but you only need "
    "to return results in English, translate as necessary."
)

RESPONSE_FORMAT_INSTRUCTION = (
    "Please provide the summary, diagnosis and prescription in the following format: "
    "Summary: <summary>\nDiagnosis: <diagnosis>\nPrescription: <prescription>"
)


class PromptPair(NamedTuple):
    clinic_prompt: str
    summary_prompt: str


DEFAULT_PROMPTS = PromptPair(BASE_CLINIC_PROMPT, BASE_SUMMARY_PROMPT)


def resolve_prompts(clinic_profile: Optional[str], summary_instructions: Optional[str]) -> PromptPair:
    """
    Builds the effective prompts from a user's stored settings. Stored values
    extend the base prompts; empty values fall back to the defaults.
    """
    clinic_prompt = BASE_CLINIC_PROMPT
    if clinic_profile and clinic_profile.strip():
        clinic_prompt = (
            f"{BASE_CLINIC_PROMPT} Here is a clinic profile to help you better diagnose and "
            f"prescribe: {clinic_profile.strip()}"
        )

    summary_prompt = BASE_SUMMARY_PROMPT
    if summary_instructions and summary_instructions.strip():
        summary_prompt = (
            f"{BASE_SUMMARY_PROMPT} Below are instructions for the summary: "
            f"{summary_instructions.strip()}"
        )

    return PromptPair(clinic_prompt, summary_prompt)


def build_system_prompt(clinic_prompt: str, summary_prompt: str) -> str:
    return f"{clinic_prompt}\n\n{summary_prompt}\n\n{RESPONSE_FORMAT_INSTRUCTION}"
