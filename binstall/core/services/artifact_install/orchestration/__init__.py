"""L5 Orchestration — sequences the stages of one install run."""
