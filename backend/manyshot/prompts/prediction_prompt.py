# -*- coding: utf-8 -*-
"""Prompt template asking a model to pick exactly one answer option."""

from typing import Iterable

PREDICTION_PROMPT = """
  Given the following question:
  
  {question}
  
  Please provide your answer by selecting ONLY ONE of the following options:
  
  {options}
  
  Instructions:
  1. Read the question carefully.
  2. Consider all provided answer options.
  3. Select the single most appropriate answer from the given options.
  4. Respond ONLY with the chosen answer option, exactly as it appears in the list.
  
  Your response must be in the following JSON format:
  {{
    "prediction": "Your chosen answer option here"
  }}
  
  Ensure that your response contains only the JSON object with the "prediction" key and the selected answer as its value.
  """

SYSTEM_PROMPT = "You are the world's greatest predictor."


def format_options(options: Iterable[str]) -> str:
    return "\n".join(f"- {option}" for option in options)


def build_prediction_prompt(question: str, options: Iterable[str]) -> str:
    """Render the shared prediction prompt used by every backend."""

    return PREDICTION_PROMPT.format(question=question, options=format_options(options))


__all__ = ["PREDICTION_PROMPT", "SYSTEM_PROMPT", "build_prediction_prompt", "format_options"]
