"""StableLens: API стейблкоинов, доходностей и регуляторных алертов."""

__version__ = "1.2.0"
