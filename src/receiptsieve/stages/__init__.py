"""Pipeline stages: normalize, noise, language, amounts, merchant, extract, validate, materialize."""
