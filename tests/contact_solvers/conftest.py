import numpy as np
import pytest

from sapcontact.contact_solvers.sap import SapModel

from sap_fixtures import DummyModel, SpringMassModel


@pytest.fixture
def spring_mass() -> SpringMassModel:
    return SpringMassModel()


@pytest.fixture
def spring_mass_problem(spring_mass: SpringMassModel):
    problem = spring_mass.make_contact_problem(np.zeros(6), np.zeros(6))
    assert problem.num_cliques() == 2
    assert problem.num_velocities() == 6
    assert problem.num_constraints() == 1
    assert problem.num_constraint_equations() == 3
    return problem


@pytest.fixture
def dummy_model() -> DummyModel:
    return DummyModel()


@pytest.fixture
def dummy_problem(dummy_model: DummyModel):
    problem = dummy_model.make_contact_problem()
    assert problem.num_cliques() == 3
    assert problem.num_velocities() == 9
    assert problem.num_constraints() == 2
    assert problem.num_constraint_equations() == 8
    return problem


@pytest.fixture
def dummy_sap_model(dummy_problem) -> SapModel:
    return SapModel(dummy_problem)
