import numpy as np


def libor_in_arrears_analytic(initial_forward, variance, fixing_time, period_end,
                              discount_factor_end, discount_factor_fixing):
    """
    Value of a floater in arrears under log-normal LIBOR dynamics (Black model).

    The first part is the ordinary floater paying at T_{i+1}; the second part is
    the convexity adjustment from paying at the fixing date T_i:

        [P(T_i) - P(T_{i+1})] + P(T_{i+1}) * delta^2 * L_0^2 * exp(variance * T_i)

    Parameters:
    initial_forward (float): L_0 = L(0; T_i, T_{i+1}).
    variance (float): Time-averaged squared volatility sigma^2 of the LIBOR up to T_i.
    fixing_time (float): T_i (fixing = payment).
    period_end (float): T_{i+1}.
    discount_factor_end (float): P(0, T_{i+1}).
    discount_factor_fixing (float): P(0, T_i).
    """
    period_length = period_end - fixing_time

    # Nothing random has accrued yet, the LIBOR is known today
    if fixing_time == 0.0:
        return period_length * initial_forward

    first_part = discount_factor_fixing - discount_factor_end
    convexity_adjusted_part = (discount_factor_end * period_length * period_length
                               * initial_forward * initial_forward * np.exp(fixing_time * variance))
    return first_part + convexity_adjusted_part


def analytic_value(model, product, integrated_covariance=None):
    """
    Analytic benchmark for a LiborInArrears product on the model's curves and integrated variance.

    Valuing a whole strip, pass integrated_covariance = model.integrated_libor_covariance() once.
    """
    i = product.libor_index(model)
    T_i, T_next = product.fixing_time, product.period_end

    initial_forward = float(model.forward_curve.forward_rate(T_i))
    discount_fixing = float(model.discount_curve.discount_factor(T_i))
    discount_end = float(model.discount_curve.discount_factor(T_next))

    variance = 0.0
    if T_i > 0.0:
        time_index = model.tenor_time_indices[i]
        if integrated_covariance is None:
            integrated_covariance = model.integrated_libor_covariance()
        integrated_variance = integrated_covariance[time_index, i, i].item()
        variance = integrated_variance / T_i

    value = libor_in_arrears_analytic(initial_forward, variance, T_i, T_next, discount_end, discount_fixing)
    return product.notional * value
